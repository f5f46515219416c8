"""Pydantic models for the workflow-run wire format."""
