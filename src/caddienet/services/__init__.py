"""CaddieNet services."""
