"""Session and connection manager for an interactive companion."""

__version__ = "0.1.0"
