"""Study progress tracker with multi-device sync through a shared remote document."""

__version__ = "1.0.0"
