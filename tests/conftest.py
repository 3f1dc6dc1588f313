"""
Shared fakes and fixtures.

- FakeApi: the annotation server behind an httpx.MockTransport.
- RecordingNotifier / ScriptedPrompter: stand-ins for the UI side channels.
- Harness: runs an async scenario against a fresh session on a MemoryMap.
"""

import asyncio
import copy
import inspect
import json
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from jobmap.config import Settings
from jobmap.io.map_surface import MemoryMap
from jobmap.models import Job, Position
from jobmap.session import open_session

BASE_URL = "http://jobmap.test/api"

JOB_PATH = re.compile(r"^/jobs/(\d+)/annotations$")
ANNOTATION_PATH = re.compile(r"^/annotations/(\d+)$")


class FakeApi:
    def __init__(self) -> None:
        self.rows: Dict[int, Dict[str, Any]] = {}
        self.next_id = 1
        self.calls: List[Tuple[str, str]] = []
        self.bodies: List[Tuple[str, str, Dict[str, Any]]] = []
        # (method, path) -> status code returned instead of the real answer
        self.fail: Dict[Tuple[str, str], int] = {}
        # GETs block on this event when it is set up
        self.gate: Optional[asyncio.Event] = None
        # number of upcoming requests that die with a connection error
        self.drop_connections = 0

    def seed(
        self,
        job_id: int,
        kind: str,
        coordinates: List[Tuple[float, float]],
        name: str = "",
        style: Optional[Dict[str, Any]] = None,
        annotation_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        aid = annotation_id if annotation_id is not None else self.next_id
        self.next_id = max(self.next_id, aid + 1)
        row = {
            "id": aid,
            "job_id": job_id,
            "annotation_type": kind,
            "name": name or f"{kind} {aid}",
            "description": "",
            "coordinates": [{"lat": lat, "lng": lng} for lat, lng in coordinates],
            "style_options": style or {},
            "created_at": "2025-09-26T07:20:13Z",
            "updated_at": "2025-09-26T07:20:13Z",
        }
        self.rows[aid] = row
        return row

    def count(self, method: str, path: Optional[str] = None) -> int:
        return sum(1 for m, p in self.calls if m == method and (path is None or p == path))

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path[len("/api"):] if request.url.path.startswith("/api") else request.url.path
        method = request.method
        self.calls.append((method, path))

        if self.drop_connections > 0:
            self.drop_connections -= 1
            raise httpx.ConnectError("connection refused", request=request)

        if (method, path) in self.fail:
            return httpx.Response(self.fail[(method, path)], json={"error": "failed"})

        body = json.loads(request.content) if request.content else {}
        if body:
            self.bodies.append((method, path, body))

        m = JOB_PATH.match(path)
        if m and method == "GET":
            if self.gate is not None:
                await self.gate.wait()
            job_id = int(m.group(1))
            rows = [copy.deepcopy(r) for r in self.rows.values() if r["job_id"] == job_id]
            return httpx.Response(200, json=rows)

        if m and method == "POST":
            row = self.seed(
                int(m.group(1)),
                body["annotationType"],
                [(p["lat"], p["lng"]) for p in body["coordinates"]],
                name=body["name"],
                style=body.get("styleOptions"),
            )
            row["description"] = body.get("description", "")
            return httpx.Response(201, json=copy.deepcopy(row))

        m = ANNOTATION_PATH.match(path)
        if m:
            aid = int(m.group(1))
            if aid not in self.rows:
                return httpx.Response(404, json={"error": "Annotation not found"})
            if method == "PUT":
                row = self.rows[aid]
                row["name"] = body["name"]
                row["description"] = body["description"]
                row["coordinates"] = body["coordinates"]
                row["style_options"] = body.get("styleOptions") or {}
                row["updated_at"] = "2025-09-27T08:00:00Z"
                return httpx.Response(200, json=copy.deepcopy(row))
            if method == "DELETE":
                del self.rows[aid]
                return httpx.Response(200, json={"message": "Annotation deleted successfully"})

        return httpx.Response(404, json={"error": "no route"})


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: List[Tuple[str, str]] = []

    def notify(self, message: str, kind: str = "info") -> None:
        self.messages.append((message, kind))

    @property
    def last(self) -> Tuple[str, str]:
        return self.messages[-1]


class ScriptedPrompter:
    """Answers come from queues; an empty queue means 'user cancelled'."""

    def __init__(self) -> None:
        self.confirms: List[bool] = []
        self.texts: List[Optional[str]] = []
        self.edits: List[Optional[Dict[str, str]]] = []
        self.questions: List[str] = []
        self.on_edit: Optional[Callable[[Any], None]] = None

    async def confirm(self, question: str) -> bool:
        self.questions.append(question)
        return self.confirms.pop(0) if self.confirms else False

    async def prompt_text(self, title: str, label: str, placeholder: str = "") -> Optional[str]:
        self.questions.append(label)
        return self.texts.pop(0) if self.texts else None

    async def edit_annotation(self, annotation, current_color, default_color):
        if self.on_edit is not None:
            # the hook may return a coroutine, e.g. a reload racing the dialog
            outcome = self.on_edit(annotation)
            if inspect.isawaitable(outcome):
                await outcome
        return self.edits.pop(0) if self.edits else None


class Harness:
    def __init__(self, api: FakeApi) -> None:
        self.api = api
        self.surface = MemoryMap()
        self.notifier = RecordingNotifier()
        self.prompter = ScriptedPrompter()

    def run(self, scenario):
        async def main():
            async with open_session(
                Settings(base_url=BASE_URL),
                surface=self.surface,
                notifier=self.notifier,
                prompter=self.prompter,
                transport=httpx.MockTransport(self.api.handler),
            ) as session:
                return await scenario(session)

        return asyncio.run(main())


JOB_ID = 7


def make_job(job_id: int = JOB_ID, lat: float = 37.0842, lng: float = -94.5133) -> Job:
    return Job(id=job_id, position=Position(lat, lng), title="Main St cleanup", job_type="CleanUps", job_number="J-1")


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def harness(api) -> Harness:
    return Harness(api)


@pytest.fixture
def job() -> Job:
    return make_job()
