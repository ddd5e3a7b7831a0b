"""Run Python scripts against a PostgreSQL connection."""

__version__ = "0.1.0"

__all__ = ["__version__"]
