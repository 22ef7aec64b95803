"""Availability and booking conflict engine for appointment scheduling."""

__version__ = "1.0.0"
