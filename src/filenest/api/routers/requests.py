"""File request router.

- POST /requests: create a request, subject to the monthly quota
- GET /requests/{unique_link}: public lookup for the upload page
- POST /requests/{unique_link}/upload-check: admit an upload batch
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, status

from filenest.api.dependencies import AppSettings, Repository
from filenest.api.middleware.errors import GoneError, NotFoundError, QuotaExceededAPIError
from filenest.api.schemas.requests import (
    CreateFileRequest,
    FileRequestResponse,
    PublicFileRequestResponse,
    UploadCheckRequest,
    UploadCheckResponse,
)
from filenest.db.models.requests import FileRequest
from filenest.services.admission import AdmissionController, OwnerIdentity
from filenest.services.requests import (
    QuotaExceededError,
    RequestExpiredError,
    RequestNotFoundError,
    UnknownOwnerError,
    build_upload_link,
    create_file_request,
    get_active_request_by_link,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/requests", tags=["requests"])


def _to_response(request: FileRequest, frontend_url: str) -> FileRequestResponse:
    return FileRequestResponse(
        request_id=request.request_id,
        unique_link=request.unique_link,
        upload_link=build_upload_link(frontend_url, request.unique_link),
        description=request.description,
        recipient_email=request.recipient_email,
        deadline=request.deadline,
        status=request.status,
        created_at=request.created_at,
        expires_at=request.expires_at,
        is_active=request.is_active,
    )


async def _load_active(repository: Repository, unique_link: str) -> FileRequest:
    try:
        return await get_active_request_by_link(repository, unique_link, datetime.now(UTC))
    except RequestNotFoundError as exc:
        raise NotFoundError("File request", unique_link) from exc
    except RequestExpiredError as exc:
        raise GoneError("File request", unique_link) from exc


@router.post("", status_code=status.HTTP_201_CREATED, response_model=FileRequestResponse)
async def create_request(
    body: CreateFileRequest,
    repository: Repository,
    settings: AppSettings,
) -> FileRequestResponse:
    """Create a file request charged to the requester's monthly quota."""
    owner = OwnerIdentity(user_id=body.user_id, email=body.recipient_email)
    try:
        request = await create_file_request(
            repository,
            owner,
            body.description,
            datetime.now(UTC),
            recipient_email=body.recipient_email,
            deadline=body.deadline,
        )
    except UnknownOwnerError as exc:
        raise NotFoundError("User", str(exc.user_id)) from exc
    except QuotaExceededError as exc:
        raise QuotaExceededAPIError.from_decision(exc.decision) from exc

    return _to_response(request, settings.frontend_url)


@router.get("/{unique_link}", response_model=PublicFileRequestResponse)
async def get_request(unique_link: str, repository: Repository) -> PublicFileRequestResponse:
    """Public view of an active request."""
    request = await _load_active(repository, unique_link)
    return PublicFileRequestResponse(
        unique_link=request.unique_link,
        description=request.description,
        deadline=request.deadline,
        expires_at=request.expires_at,
    )


@router.post("/{unique_link}/upload-check", response_model=UploadCheckResponse)
async def check_upload(
    unique_link: str,
    body: UploadCheckRequest,
    repository: Repository,
) -> UploadCheckResponse:
    """Check a batch of files against the request owner's tier limits."""
    request = await _load_active(repository, unique_link)
    decision = await AdmissionController(repository).admit_upload(request, body.file_sizes)
    if not decision.allowed:
        raise QuotaExceededAPIError.from_decision(decision)

    return UploadCheckResponse(
        allowed=True,
        tier=decision.tier.value if decision.tier else None,
        limit=decision.limit,
        current=decision.current,
        needed=decision.needed,
    )
