"""Schemas for the operator endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class IntegrityReportResponse(BaseModel):
    """Result of GET /admin/integrity."""

    orphaned_requests: int
    repairable_requests: list[str] = Field(default_factory=list)
    unrepairable_requests: list[str] = Field(default_factory=list)
    orphaned_files: list[str] = Field(default_factory=list)


class IntegrityFixResponse(BaseModel):
    """Result of POST /admin/integrity/fix."""

    linked_count: int
    skipped_count: int
    unrepairable_count: int
    failed_count: int
    users_created: int
    orphaned_files: list[str] = Field(default_factory=list)
    stopped: bool = False


class PassRunResponse(BaseModel):
    """Result of a one-off reconciliation pass."""

    name: str
    result: dict[str, Any]
