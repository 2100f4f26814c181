"""Character Studio - AI character analysis and visualization backend."""

__version__ = "0.1.0"
