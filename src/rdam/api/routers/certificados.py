"""Certificate download router.

The download token in the URL is the only credential. Expired
certificates answer 410 Gone; unknown tokens answer 404.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response

from rdam.api.dependencies import Certificates

router = APIRouter(prefix="/certificados", tags=["certificados"])


@router.get(
    "/{download_token}",
    response_class=Response,
    summary="Download a published certificate",
    responses={200: {"content": {"application/pdf": {}}}},
)
async def download_certificate(download_token: str, certificates: Certificates) -> Response:
    certificate = await certificates.resolve_download(download_token)
    return Response(
        content=certificate.content,
        media_type=certificate.content_type,
        headers={
            "Content-Disposition": f'attachment; filename="{certificate.filename}"',
            "Cache-Control": "no-store",
        },
    )
