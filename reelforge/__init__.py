"""ReelForge - human-in-the-loop AI video production workflow."""

__version__ = "0.1.0"
