"""CaddieNet - conversational command assistant for golf competitions."""

__version__ = "0.1.0"
