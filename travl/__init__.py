"""travl - travel booking service and booking client."""

__version__ = "1.0.0"
