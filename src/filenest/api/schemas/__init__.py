"""Pydantic request and response schemas for the FileNest API."""
