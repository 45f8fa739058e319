"""HTTP API for Vomage."""
