"""
Persistence bridge: the only place annotation data crosses the network.

Responsibilities:
- call the plain-function API client,
- turn httpx failures into `Unauthorized` / `ServerError`,
- normalize server rows into `Annotation` objects,
- deduplicate concurrent fetches for the same job.

Nothing here retries a write or touches an overlay; callers decide what a
failure means for the map.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from jobmap.clients import annotations_api as api
from jobmap.errors import RequestAborted, ServerError, Unauthorized
from jobmap.guard import FetchGuard
from jobmap.models import Annotation, AnnotationPayload
from jobmap.pipeline.normalize import normalize_annotation, normalize_annotations

logger = logging.getLogger(__name__)


def _translate(exc: Exception, action: str) -> Exception:
    # ValueError covers a 2xx response whose body is not JSON
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == 401:
            return Unauthorized()
        return ServerError(f"{action} failed with HTTP {status}", status=status)
    return ServerError(f"{action} failed: {exc}")


class PersistenceBridge:
    def __init__(self, client: httpx.AsyncClient):
        self._client = client
        self._fetches: FetchGuard[List[Annotation]] = FetchGuard("annotation fetch")

    async def fetch_annotations(self, job_id: int) -> Optional[List[Annotation]]:
        """
        Annotations for one job, or None if the fetch was aborted.

        A second call while one is in flight shares the first call's result.
        """
        try:
            return await self._fetches.run(job_id, lambda: self._fetch(job_id))
        except RequestAborted:
            logger.info("Annotation fetch for job %s aborted", job_id)
            return None

    async def _fetch(self, job_id: int) -> List[Annotation]:
        logger.debug("GET annotations for job %s", job_id)
        try:
            rows = await api.get_job_annotations(self._client, job_id)
        except (httpx.HTTPError, ValueError) as e:
            raise _translate(e, f"Loading annotations for job {job_id}") from e
        return normalize_annotations(rows, job_id=job_id)

    def cancel_fetch(self, job_id: int) -> bool:
        return self._fetches.cancel(job_id)

    async def create_annotation(self, job_id: int, draft: AnnotationPayload) -> Annotation:
        try:
            row = await api.create_job_annotation(self._client, job_id, draft)
        except (httpx.HTTPError, ValueError) as e:
            raise _translate(e, "Creating annotation") from e
        created = normalize_annotation(row, job_id=job_id)
        logger.info("Created %s annotation %s on job %s", created.kind.value, created.id, job_id)
        return created

    async def update_annotation(self, annotation_id: int, payload: AnnotationPayload) -> Annotation:
        """Full replace: `payload` must be the complete current state."""
        try:
            row = await api.update_annotation(self._client, annotation_id, payload)
        except (httpx.HTTPError, ValueError) as e:
            raise _translate(e, f"Saving annotation {annotation_id}") from e
        return normalize_annotation(row)

    async def delete_annotation(self, annotation_id: int) -> None:
        try:
            await api.delete_annotation(self._client, annotation_id)
        except (httpx.HTTPError, ValueError) as e:
            raise _translate(e, f"Deleting annotation {annotation_id}") from e
        logger.info("Deleted annotation %s", annotation_id)
