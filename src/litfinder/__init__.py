"""LitFinder - local semantic search over document libraries."""

__version__ = "0.1.0"
