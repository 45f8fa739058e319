"""Vomage: voice clip to mood image pipeline."""

__version__ = "0.1.0"
