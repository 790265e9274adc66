"""Pydantic schemas for the internal operator endpoints."""

from __future__ import annotations

# NOTE: datetime and UUID must remain at runtime for Pydantic validation
from datetime import datetime  # noqa: TC003
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field

from rdam.db.models.base import RequestState  # noqa: TC001

if TYPE_CHECKING:
    from rdam.services.repository import RequestPage, RequestRecord


class RequestSummary(BaseModel):
    """A request as shown in operator listings.

    Storage references and download tokens are never listed.
    """

    request_id: UUID = Field(..., description="Internal request identifier")
    tramite_number: str = Field(..., description="Public trámite number")
    subject_id: str = Field(..., description="DNI/CUIL of the person concerned")
    email: str = Field(..., description="Citizen contact email")
    jurisdiction_id: int = Field(..., description="Jurisdiction id")
    state: RequestState = Field(..., description="Current lifecycle state")
    created_at: datetime = Field(..., description="Submission timestamp")
    paid_at: datetime | None = Field(None, description="Payment timestamp")
    issued_at: datetime | None = Field(None, description="Certificate issue timestamp")
    version: int = Field(..., description="Optimistic concurrency version")

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_record(cls, record: RequestRecord) -> RequestSummary:
        return cls.model_validate(record)


class RequestListResponse(BaseModel):
    """One page of requests, newest first."""

    items: list[RequestSummary] = Field(..., description="Requests on this page")
    total: int = Field(..., description="Number of matching requests")
    page: int = Field(0, description="Zero-based page index")
    size: int = Field(20, description="Page size")

    @classmethod
    def from_page(cls, page: RequestPage) -> RequestListResponse:
        return cls(
            items=[RequestSummary.from_record(r) for r in page.items],
            total=page.total,
            page=page.page,
            size=page.size,
        )


class PublishResponse(BaseModel):
    """Result of uploading and publishing a certificate."""

    tramite_number: str = Field(..., description="Public trámite number")
    state: RequestState = Field(..., description="Lifecycle state (published)")
    download_url: str = Field(..., description="Public download link")


class RegenerateTokenResponse(BaseModel):
    """Result of replacing a download token."""

    tramite_number: str = Field(..., description="Public trámite number")
    download_url: str = Field(..., description="New public download link")
