"""Bundled declarative content."""
