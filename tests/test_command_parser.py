"""Tests for the command parser."""

import pytest

from journalbots.framework.commands import CommandParser
from journalbots.framework.types import BotCommand, BotCommandParameter, CommandBot


async def _noop(params, context):
    return None


@pytest.fixture
def parser(make_bot):
    parser = CommandParser()
    parser.register_bot(make_bot())
    parser.register_bot(make_bot(bot_id="other-bot", name="Other Bot"))
    return parser


@pytest.fixture
def review_bot():
    return CommandBot(
        id="review-bot",
        name="Review Bot",
        description="Assigns reviewers",
        version="1.0.0",
        commands=[
            BotCommand(
                name="assign",
                description="Assign reviewers",
                execute=_noop,
                parameters=[
                    BotCommandParameter(name="reviewers", description="Reviewers", required=True),
                    BotCommandParameter(name="deadline", description="Deadline"),
                    BotCommandParameter(name="message", description="Message"),
                ],
            ),
            BotCommand(
                name="set",
                description="Set values",
                execute=_noop,
                parameters=[
                    BotCommandParameter(name="state", description="State"),
                    BotCommandParameter(name="count", description="Count", type="number"),
                    BotCommandParameter(name="urgent", description="Urgent", type="boolean"),
                    BotCommandParameter(name="tags", description="Tags", type="array"),
                    BotCommandParameter(name="level", description="Level", type="number", default_value=1),
                ],
            ),
        ],
    )


class TestParseMessage:
    """Tests for CommandParser.parse_message."""

    def test_simple_mention(self, parser):
        commands = parser.parse_message("@echo-bot echo hello")
        assert len(commands) == 1
        assert commands[0].bot_id == "echo-bot"
        assert commands[0].command == "echo"
        assert commands[0].parameters == {"text": "hello"}
        assert commands[0].raw_text == "@echo-bot echo hello"
        assert not commands[0].is_unrecognized

    def test_unknown_bot_is_skipped(self, parser):
        assert parser.parse_message("@nobody echo hello") == []

    def test_text_without_mentions(self, parser):
        assert parser.parse_message("just a regular comment") == []

    def test_unknown_command_is_flagged(self, parser):
        commands = parser.parse_message("@echo-bot dance all night")
        assert len(commands) == 1
        assert commands[0].is_unrecognized
        assert commands[0].command == "dance"
        assert commands[0].parameters == {"original_text": "all night"}

    def test_bare_mention_becomes_help(self, parser):
        commands = parser.parse_message("can someone ask @echo-bot")
        assert len(commands) == 1
        assert commands[0].command == "help"
        assert commands[0].parameters == {}

    def test_multiple_mentions_in_scan_order(self, parser):
        commands = parser.parse_message("@echo-bot echo one @other-bot echo two")
        assert [(c.bot_id, c.parameters["text"]) for c in commands] == [
            ("echo-bot", "one"),
            ("other-bot", "two"),
        ]

    def test_newline_ends_command(self, parser):
        commands = parser.parse_message("@echo-bot echo one\nthanks everyone")
        assert commands[0].parameters == {"text": "one"}
        assert commands[0].raw_text == "@echo-bot echo one"

    def test_email_address_is_not_a_mention(self, parser):
        assert parser.parse_message("write to editor@echo-bot echo now") == []

    def test_mention_resolved_by_display_name(self, parser):
        commands = parser.parse_message("@echo echo hi")
        assert commands[0].bot_id == "echo-bot"

    def test_help_with_command_name(self, parser):
        commands = parser.parse_message("@echo-bot help echo")
        assert commands[0].command == "help"
        assert commands[0].parameters == {"command": "echo"}

    def test_keyword_trigger(self):
        parser = CommandParser()
        parser.register_bot(CommandBot(
            id="integrity-bot",
            name="Integrity Bot",
            description="Checks integrity",
            version="1.0.0",
            keywords=["plagiarism"],
            commands=[BotCommand(name="auto-trigger", description="Auto", execute=_noop)],
        ))
        commands = parser.parse_message("Please check for Plagiarism here")
        assert len(commands) == 1
        assert commands[0].command == "auto-trigger"
        assert commands[0].parameters == {
            "keyword": "plagiarism",
            "full_text": "Please check for Plagiarism here",
        }

    def test_keywords_without_auto_trigger_are_ignored(self, make_bot):
        parser = CommandParser()
        parser.register_bot(make_bot(keywords=["hello"]))
        assert parser.parse_message("hello there") == []


class TestParseParameters:
    """Tests for CommandParser.parse_parameters."""

    def test_key_value_and_types(self, review_bot):
        parser = CommandParser()
        params = parser.parse_parameters(
            'state="under review" count=3 urgent=yes tags=a,b',
            review_bot.get_command("set").parameters,
        )
        assert params == {
            "state": "under review",
            "count": 3.0,
            "urgent": True,
            "tags": ["a", "b"],
            "level": 1,
        }

    def test_single_quoted_value(self, review_bot):
        params = CommandParser().parse_parameters("state='in press'", review_bot.get_command("set").parameters)
        assert params["state"] == "in press"

    def test_positional_in_declaration_order(self, review_bot):
        params = CommandParser().parse_parameters("draft 4", review_bot.get_command("set").parameters)
        assert params["state"] == "draft"
        assert params["count"] == 4.0

    def test_mention_token_consumes_rest(self, review_bot):
        parser = CommandParser()
        parser.register_bot(review_bot)
        commands = parser.parse_message("@review-bot assign @alice @bob deadline=2025-01-31")
        assert commands[0].parameters == {"reviewers": "@alice @bob", "deadline": "2025-01-31"}

    def test_defaults_backfilled_for_optional_only(self, review_bot):
        params = CommandParser().parse_parameters("", review_bot.get_command("set").parameters)
        assert params == {"level": 1}

        required_with_default = [
            BotCommandParameter(name="x", description="", required=True, default_value="d"),
        ]
        assert CommandParser().parse_parameters("", required_with_default) == {}

    def test_unknown_key_becomes_positional(self, review_bot):
        params = CommandParser().parse_parameters("foo=bar", review_bot.get_command("set").parameters)
        assert params["state"] == "foo=bar"


class TestRegistry:
    """Tests for bot registration and lookup."""

    def test_register_injects_help(self, make_bot):
        parser = CommandParser()
        stored = parser.register_bot(make_bot())
        assert [c.name for c in stored.commands] == ["echo", "help"]

    def test_register_replaces_same_id(self, make_bot):
        parser = CommandParser()
        parser.register_bot(make_bot(name="First"))
        parser.register_bot(make_bot(name="Second"))
        assert len(parser.get_all_bots()) == 1
        assert parser.get_bot("echo-bot").name == "Second"

    def test_find_bot_by_id_prefix(self, make_bot):
        parser = CommandParser()
        parser.register_bot(make_bot(bot_id="editorial-bot", name="Decisions"))
        assert parser.find_bot_by_name("editorial").id == "editorial-bot"
        assert parser.find_bot_by_name("unknown") is None

    def test_unregister(self, parser):
        parser.unregister_bot("other-bot")
        assert parser.get_bot("other-bot") is None
        assert parser.parse_message("@other-bot echo hi") == []

    def test_generate_help_for_unknown_bot(self, parser):
        assert parser.generate_bot_help("missing") == "Bot not found"
