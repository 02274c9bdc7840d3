"""API route modules."""

from caddienet.api.routes import assistant, health, preferences

__all__ = ["assistant", "health", "preferences"]
