"""A Flask JSON service for users and tasks stored in MongoDB."""

__version__ = "0.3.0"
__all__ = ["__version__"]