"""Internal operator router.

Operators list the requests of their jurisdiction, upload the certificate
of a paid request and regenerate download links. Administrators may act on
every jurisdiction; everyone else is limited to their own, and acting on
another one answers 403.
"""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, File, Query, UploadFile

from rdam.api.dependencies import (
    AppSettings,
    Certificates,
    Coordinator,
    CurrentOperator,
    Repository,
)
from rdam.api.schemas.interno import (
    PublishResponse,
    RegenerateTokenResponse,
    RequestListResponse,
)
from rdam.db.models.base import RequestState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/interno/solicitudes", tags=["interno"])


@router.get(
    "",
    response_model=RequestListResponse,
    summary="List requests",
)
async def list_requests(
    operator: CurrentOperator,
    coordinator: Coordinator,
    jurisdiction_id: Annotated[
        int | None, Query(ge=1, description="Filter by jurisdiction")
    ] = None,
    state: Annotated[RequestState | None, Query(description="Filter by state")] = None,
    subject_id: Annotated[
        str | None, Query(pattern=r"^[0-9]{7,11}$", description="Filter by DNI/CUIL")
    ] = None,
    page: Annotated[int, Query(ge=0, description="Zero-based page index")] = 0,
    size: Annotated[int | None, Query(ge=1, le=100, description="Page size")] = None,
) -> RequestListResponse:
    """Requests visible to the operator, newest first."""
    result = await coordinator.list_by_jurisdiction(
        operator,
        jurisdiction_id,
        state=state,
        subject_id=subject_id,
        page=page,
        size=size,
    )
    return RequestListResponse.from_page(result)


@router.post(
    "/{request_id}/certificado",
    response_model=PublishResponse,
    summary="Upload and publish the certificate",
)
async def upload_certificate(
    request_id: UUID,
    operator: CurrentOperator,
    certificates: Certificates,
    settings: AppSettings,
    file: Annotated[UploadFile, File(description="Certificate PDF")],
) -> PublishResponse:
    """Store the certificate PDF of a PAID request and publish it.

    The citizen is emailed the download link once the request is
    PUBLISHED.
    """
    # One byte past the limit is enough to reject an oversized upload
    data = await file.read(settings.lifecycle.max_certificate_bytes + 1)
    published = await certificates.upload_and_publish(
        request_id, data, file.content_type, operator
    )
    return PublishResponse(
        tramite_number=published.record.tramite_number,
        state=published.record.state,
        download_url=published.download_url,
    )


@router.post(
    "/{request_id}/certificado/regenerar-token",
    response_model=RegenerateTokenResponse,
    summary="Regenerate the download token",
)
async def regenerate_download_token(
    request_id: UUID,
    operator: CurrentOperator,
    coordinator: Coordinator,
    repository: Repository,
) -> RegenerateTokenResponse:
    """Replace the download token; the previous link stops working."""
    token = await coordinator.regenerate_download_token(request_id, operator)
    record = await repository.get(request_id)
    return RegenerateTokenResponse(
        tramite_number=record.tramite_number,
        download_url=coordinator.download_url(token),
    )
