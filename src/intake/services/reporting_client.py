import logging
from typing import Optional

import httpx

from intake.errors import ReportCreationError, UploadError
from intake.models.incident import RoadRef
from intake.models.photo import Photo, PhotoBlob
from intake.services.enrichment import RoadLookup
from intake.services.submission import CreatedReport, MediaUploader, ReportCreator

logger = logging.getLogger(__name__)

UPLOAD_PATH = "/api/v1/upload/photos"
REPORTS_PATH = "/api/v1/reports"
ROAD_SUGGEST_PATH = "/api/v1/roads/suggest"


def _error_message(response: httpx.Response, fallback: str) -> str:
    """The server's own error text when it sent one, the fallback otherwise."""
    try:
        data = response.json()
    except ValueError:
        return fallback
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return fallback


class ReportingClient(MediaUploader, ReportCreator, RoadLookup):
    """HTTP client for the reporting API: media upload, report creation and road lookup."""

    def __init__(self, base_url: str, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def upload_photo(self, photo: Photo, blob: PhotoBlob) -> str:
        files = {"photos": (f"photo-{photo.id}.jpg", blob.payload, blob.content_type)}
        try:
            response = await self.client.post(UPLOAD_PATH, files=files)
        except httpx.HTTPError as e:
            raise UploadError(f"Photo upload failed: {e}") from e

        if response.is_error:
            message = _error_message(response, "Photo upload failed")
            logger.error(f"Upload of {photo.id} failed: HTTP {response.status_code} - {message}")
            raise UploadError(message)

        keys = response.json().get("keys") or []
        if not keys:
            raise UploadError("Photo upload returned no storage key")
        return keys[0]

    async def create_report(self, payload: dict) -> CreatedReport:
        try:
            response = await self.client.post(REPORTS_PATH, json=payload)
        except httpx.HTTPError as e:
            raise ReportCreationError(f"Report creation failed: {e}") from e

        if response.is_error:
            message = _error_message(response, f"Report creation failed ({response.status_code})")
            logger.error(f"Report creation failed: HTTP {response.status_code} - {message}")
            raise ReportCreationError(message)

        data = response.json()
        return CreatedReport(id=str(data["id"]), report_number=data.get("reportNumber"))

    async def lookup(self, text: str) -> Optional[RoadRef]:
        response = await self.client.get(ROAD_SUGGEST_PATH, params={"q": text, "limit": 5})
        response.raise_for_status()
        candidates = response.json()
        if not candidates:
            return None

        # Prefer an exact road number match over the first suggestion
        wanted = text.strip().upper()
        best = next((c for c in candidates if str(c.get("roadNumber", "")).upper() == wanted), candidates[0])
        return RoadRef(
            id=str(best["id"]),
            road_number=best["roadNumber"],
            road_class=best.get("roadClass", ""),
            name=best.get("name"),
        )
