"""Text extraction, cleaning and chunking."""
