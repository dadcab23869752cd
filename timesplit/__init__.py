"""Time-split timer engine: run work/break cycles and keep an append-only timesheet."""

__version__ = "0.1.0"
