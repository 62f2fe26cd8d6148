"""Workday Debrief - daily work activity summaries."""

__version__ = "0.1.0"
