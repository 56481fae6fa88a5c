"""ClearPath radon testing backend."""

__version__ = "0.1.0"
