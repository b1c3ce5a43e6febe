"""dedupr: collapse duplicate files into one copy plus symbolic links."""

__version__ = "0.1.0"
