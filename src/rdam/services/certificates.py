"""Certificate upload and download.

Publishing has a side effect outside the database: the PDF is stored
before the request moves to PUBLISHED. An upload failure aborts the
publication. If the state change fails after a successful upload, the
orphaned object is removed on a best-effort basis.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from rdam.db.models.base import RequestState
from rdam.services.errors import (
    CertificateExpiredError,
    CertificateTooLargeError,
    InvalidStateError,
    RdamError,
    RequestNotFoundError,
    StorageFailureError,
    UnsupportedCertificateTypeError,
)
from rdam.services.lifecycle import generate_download_token
from rdam.services.storage import ObjectNotFoundError, StorageError, certificate_key

if TYPE_CHECKING:
    from uuid import UUID

    from rdam.services.authz import ActingOperator
    from rdam.services.lifecycle import LifecycleCoordinator
    from rdam.services.repository import RequestRecord, RequestRepository
    from rdam.services.storage import CertificateStore

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
PDF_MAGIC = b"%PDF-"


@dataclass(frozen=True, slots=True)
class PublishedCertificate:
    record: RequestRecord
    download_token: str
    download_url: str


@dataclass(frozen=True, slots=True)
class CertificateFile:
    filename: str
    content: bytes
    content_type: str = PDF_CONTENT_TYPE


def validate_pdf(data: bytes, content_type: str | None, max_bytes: int) -> None:
    """Reject anything that is not a PDF within the size limit.

    Raises:
        UnsupportedCertificateTypeError: If the declared type or the file
            signature is not PDF.
        CertificateTooLargeError: If the file exceeds max_bytes.
    """
    declared = (content_type or "").split(";")[0].strip().lower()
    if declared != PDF_CONTENT_TYPE:
        raise UnsupportedCertificateTypeError(content_type)
    if len(data) > max_bytes:
        raise CertificateTooLargeError(len(data), max_bytes)
    if not data.startswith(PDF_MAGIC):
        raise UnsupportedCertificateTypeError(content_type)


class CertificateService:
    """Stores certificates and serves them by download token."""

    def __init__(
        self,
        coordinator: LifecycleCoordinator,
        repository: RequestRepository,
        store: CertificateStore,
        *,
        max_bytes: int,
    ) -> None:
        self._coordinator = coordinator
        self._repo = repository
        self._store = store
        self._max_bytes = max_bytes

    async def upload_and_publish(
        self,
        request_id: UUID,
        data: bytes,
        content_type: str | None,
        operator: ActingOperator,
    ) -> PublishedCertificate:
        """Store a certificate PDF and publish it.

        State and jurisdiction are checked before storage is touched; the
        coordinator checks them again under compare-and-swap.

        Raises:
            RequestNotFoundError: If the request does not exist.
            InvalidStateError: If the request is not PAID.
            JurisdictionMismatchError: If the operator may not act on it.
            UnsupportedCertificateTypeError: If the file is not a PDF.
            CertificateTooLargeError: If the file is too large.
            StorageFailureError: If the upload fails.
            ConcurrentModificationError: If the request changed meanwhile.
        """
        record = await self._repo.get(request_id)
        if record.state is not RequestState.PAID:
            raise InvalidStateError(record.state, (RequestState.PAID,), "publish a certificate")
        operator.require(record.jurisdiction_id)
        validate_pdf(data, content_type, self._max_bytes)

        key = certificate_key(request_id)
        try:
            await asyncio.to_thread(
                self._store.upload,
                key,
                data,
                content_type=PDF_CONTENT_TYPE,
                metadata={"tramite-number": record.tramite_number},
            )
        except StorageError as e:
            logger.error(
                "Certificate upload failed: tramite=%s key=%s error=%s",
                record.tramite_number,
                key,
                e.message,
            )
            msg = "The certificate could not be stored"
            raise StorageFailureError(msg, key=key) from e

        download_token = generate_download_token()
        try:
            published = await self._coordinator.publish_certificate(
                request_id, key, download_token, operator
            )
        except RdamError:
            await self._discard(key)
            raise

        logger.info(
            "Certificate published: tramite=%s operator=%s",
            published.tramite_number,
            operator.username,
        )
        return PublishedCertificate(
            record=published,
            download_token=download_token,
            download_url=self._coordinator.download_url(download_token),
        )

    async def resolve_download(self, download_token: str) -> CertificateFile:
        """Return the certificate a download token points to.

        Raises:
            RequestNotFoundError: If no published request holds the token.
            CertificateExpiredError: If the certificate has expired.
            StorageFailureError: If the file cannot be read.
        """
        record = await self._repo.get_by_download_token(download_token)
        if record.state is RequestState.PUBLISHED_EXPIRED:
            raise CertificateExpiredError
        if record.state is not RequestState.PUBLISHED or not record.certificate_ref:
            raise RequestNotFoundError("<redacted>", field="download_token")

        try:
            content, _ = await asyncio.to_thread(self._store.download, record.certificate_ref)
        except ObjectNotFoundError as e:
            logger.error(
                "Published certificate missing from storage: tramite=%s key=%s",
                record.tramite_number,
                record.certificate_ref,
            )
            msg = "The certificate file is not available"
            raise StorageFailureError(msg, key=record.certificate_ref) from e
        except StorageError as e:
            msg = "The certificate could not be retrieved"
            raise StorageFailureError(msg, key=record.certificate_ref) from e

        return CertificateFile(filename=f"certificado-{record.tramite_number}.pdf", content=content)

    async def _discard(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._store.delete, key)
        except StorageError as e:
            logger.warning("Could not remove orphaned certificate %s: %s", key, e.message)
        else:
            logger.info("Removed orphaned certificate %s", key)
