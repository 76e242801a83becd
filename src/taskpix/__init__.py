"""Image generation and two-tier caching for task illustrations."""

__version__ = "0.1.0"
