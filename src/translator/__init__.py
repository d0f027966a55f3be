"""Chunked translation jobs: planning, resuming, running and persisting."""
