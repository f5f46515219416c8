"""Logging, cancellation, metrics and redaction helpers."""
