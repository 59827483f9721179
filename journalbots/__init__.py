"""Journal bots: command parsing, execution and plugin lifecycle for journal collaboration bots."""

__version__ = "1.0.0"
