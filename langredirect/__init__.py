"""Edge language redirector."""

__version__ = "1.0.0"
