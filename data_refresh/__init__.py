"""Azure Data Refresh: secondary replica lifecycle for refreshed environments."""

__version__ = "0.1.0"
