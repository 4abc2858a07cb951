"""Bundled competency checklist definitions."""
