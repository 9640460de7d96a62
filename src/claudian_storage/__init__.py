"""Storage and migration layer for the Claudian vault files."""

__version__ = "0.1.0"
