"""Shared building blocks: config, logging, errors, parsing and retry."""
