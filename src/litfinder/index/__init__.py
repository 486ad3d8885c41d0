"""Vector index, persistence, indexing and search."""
