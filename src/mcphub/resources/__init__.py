"""Packaged data files (schemas)."""
