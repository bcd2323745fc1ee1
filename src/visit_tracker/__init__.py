"""Visit Tracker: live safety tracking for home-care field visits."""

__version__ = "1.0.0"
