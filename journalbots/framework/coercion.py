"""Parameter coercion and validation for bot commands."""

import logging
import math
from typing import Any, Dict, Optional

from pydantic import ValidationError

from journalbots.framework.types import BotCommand, BotCommandParameter, ValidationResult

logger = logging.getLogger(__name__)

TRUTHY_VALUES = ("true", "1", "yes", "on")


def convert_value(value: str, param: BotCommandParameter) -> Any:
    """Convert a raw string token to the parameter's declared type.

    Invalid numbers and unknown enum members fall back to the parameter default.
    """
    if param.type == "number":
        try:
            number = float(value)
        except (TypeError, ValueError):
            return param.default_value
        return param.default_value if math.isnan(number) else number
    if param.type == "boolean":
        return value.lower() in TRUTHY_VALUES
    if param.type == "array":
        return [item.strip() for item in value.split(",")]
    if param.type == "enum":
        return value if value in (param.enum_values or []) else param.default_value
    return value


def is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return True
    try:
        return not math.isnan(float(value))
    except (TypeError, ValueError):
        return False


def _run_custom_validator(param: BotCommandParameter, value: Any) -> Optional[str]:
    """Run a parameter's custom validator, returning the first error message or None."""
    validator = param.validation
    try:
        if hasattr(validator, "validate_python"):
            validator.validate_python(value)
        elif validator(value) is False:
            return "invalid value"
    except ValidationError as e:
        errors = e.errors()
        return errors[0]["msg"] if errors else str(e)
    except (ValueError, TypeError) as e:
        return str(e)
    except Exception as e:
        logger.warning(f"Validator for parameter '{param.name}' failed: {e!r}")
        return str(e) or type(e).__name__
    return None


def validate_parameters(values: Dict[str, Any], command: BotCommand) -> ValidationResult:
    """Validate parsed values against a command's parameter schema.

    Never raises; callers decide whether to abort execution.
    """
    errors: list[str] = []

    for param in command.parameters:
        value = values.get(param.name)

        if param.required and (value is None or value == ""):
            errors.append(f"Required parameter '{param.name}' is missing")
            continue

        if value is None:
            continue

        if param.type == "number" and not is_number(value):
            errors.append(f"Parameter '{param.name}' must be a number")

        if param.type == "enum" and param.enum_values and value not in param.enum_values:
            errors.append(f"Parameter '{param.name}' must be one of: {', '.join(param.enum_values)}")

        if param.validation is not None:
            message = _run_custom_validator(param, value)
            if message:
                errors.append(f"Parameter '{param.name}': {message}")

    if errors:
        logger.debug(f"Parameter validation failed for '{command.name}': {errors}")
    return ValidationResult.from_errors(errors)
