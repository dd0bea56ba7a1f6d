"""StyleMe virtual try-on core."""

__version__ = "1.0.0"
