"""Logging, subprocess and redaction helpers."""
