"""Daily check-in reward settlement service."""

__version__ = "0.1.0"
