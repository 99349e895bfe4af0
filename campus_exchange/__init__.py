"""Client-side session and cart state for the Campus Exchange marketplace."""

__version__ = "1.0.0"
