"""whoDare: human vs AI edit attribution with portable encrypted statistics."""

__version__ = "0.1.0"

__all__ = ["__version__"]
