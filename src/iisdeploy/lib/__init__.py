"""Shared library code: errors, logging and terminal helpers."""
