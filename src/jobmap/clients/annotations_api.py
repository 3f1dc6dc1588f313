# src/jobmap/clients/annotations_api.py

"""
Plain-function client for the job annotation API.

Design goals:
- Keep *all* HTTP details here (URLs, verbs, status checks) so the rest of the
  package never builds a request by hand.
- Every function takes an `httpx.AsyncClient` built by `make_client()`; tests
  hand in a client backed by `httpx.MockTransport`.
- Return raw JSON (dict/list) from the server; normalization happens in
  `jobmap.pipeline.normalize`.
- Raise httpx errors untouched. The persistence bridge decides what they mean.
"""

from __future__ import annotations

from typing import Dict, List, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from jobmap.config import Settings
from jobmap.models import AnnotationPayload, AnnotationRecord


# ---- Internal helpers ---------------------------------------------------------

def _job_annotations_path(job_id: int) -> str:
    return f"/jobs/{job_id}/annotations"


def _annotation_path(annotation_id: int) -> str:
    return f"/annotations/{annotation_id}"


@retry(
    # Reads are idempotent: on a dropped connection wait 0.2s, 0.4s, ... and
    # give up after 3 tries. HTTP error statuses are not retried.
    wait=wait_exponential(multiplier=0.2, max=5),
    stop=stop_after_attempt(3),
    retry=retry_if_exception_type(httpx.TransportError),
    reraise=True,
)
async def _get_json(client: httpx.AsyncClient, path: str) -> List[AnnotationRecord]:
    resp = await client.get(path)
    resp.raise_for_status()  # raises httpx.HTTPStatusError for 4xx/5xx
    return resp.json()


async def _send_json(
    client: httpx.AsyncClient,
    method: str,
    path: str,
    body: Optional[AnnotationPayload] = None,
) -> Dict:
    # No retry on writes: a failure is surfaced and the user retries by hand.
    resp = await client.request(method, path, json=body)
    resp.raise_for_status()
    if not resp.content:
        return {}
    return resp.json()


# ---- Public API ---------------------------------------------------------------

def make_client(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """
    Build the one AsyncClient a session uses.

    - base_url/timeout/auth come from Settings.
    - `transport` is only passed by tests (httpx.MockTransport).
    """
    return httpx.AsyncClient(
        base_url=settings.base_url,
        timeout=settings.timeout,
        headers=settings.headers(),
        cookies=settings.cookies(),
        transport=transport,
    )


async def get_job_annotations(client: httpx.AsyncClient, job_id: int) -> List[AnnotationRecord]:
    """GET /jobs/{job_id}/annotations -> list of raw annotation rows."""
    return await _get_json(client, _job_annotations_path(job_id))


async def create_job_annotation(
    client: httpx.AsyncClient, job_id: int, payload: AnnotationPayload
) -> AnnotationRecord:
    """POST /jobs/{job_id}/annotations -> the created row (with its new id)."""
    return await _send_json(client, "POST", _job_annotations_path(job_id), payload)


async def update_annotation(
    client: httpx.AsyncClient, annotation_id: int, payload: AnnotationPayload
) -> AnnotationRecord:
    """
    PUT /annotations/{id} -> the updated row.

    The server overwrites name, description, coordinates and style_options
    from the body, so `payload` must carry all of them.
    """
    return await _send_json(client, "PUT", _annotation_path(annotation_id), payload)


async def delete_annotation(client: httpx.AsyncClient, annotation_id: int) -> None:
    """DELETE /annotations/{id}. The response body is a confirmation message we ignore."""
    await _send_json(client, "DELETE", _annotation_path(annotation_id))
