"""modshelf: Local mod library with catalog metadata and offline translation."""

__version__ = "0.3.0"
