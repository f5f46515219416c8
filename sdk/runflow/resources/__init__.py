"""Caller-facing resources."""
