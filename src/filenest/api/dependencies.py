"""Shared FastAPI dependencies.

Routes get settings, a repository and a notifier through these providers so
tests can swap them with ``app.dependency_overrides``.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from filenest.core.config import Settings
from filenest.services.notifier import EmailNotifier, Notifier
from filenest.services.repository import RequestRepository


def get_app_settings(request: Request) -> Settings:
    """Settings passed to create_app(), else the process-wide settings."""
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        from filenest.core.settings import get_settings

        settings = get_settings()
    return settings


AppSettings = Annotated[Settings, Depends(get_app_settings)]


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session from the application's session factory."""
    from filenest.db import get_async_session

    async with get_async_session() as session:
        yield session


DbSession = Annotated[AsyncSession, Depends(get_db_session)]


async def get_repository(session: DbSession) -> RequestRepository:
    return RequestRepository(session)


Repository = Annotated[RequestRepository, Depends(get_repository)]


def get_notifier(settings: AppSettings) -> Notifier:
    return EmailNotifier(settings.smtp, app_name=settings.app_name)


AppNotifier = Annotated[Notifier, Depends(get_notifier)]
