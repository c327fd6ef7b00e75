"""Personal daily task tracker with day-rollover carry-over."""

__version__ = "0.1.0"
