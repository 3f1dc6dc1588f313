"""
One session = one of each engine singleton, sharing one HTTP client.

    async with open_session(settings) as session:
        await session.controller.register_job(job)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx

from jobmap.bridge import PersistenceBridge
from jobmap.clients.annotations_api import make_client
from jobmap.config import Settings
from jobmap.controller import JobEditModeController
from jobmap.edit_state import EditStateTracker
from jobmap.io.console import ConsolePrompter, EchoNotifier, Notifier, Prompter
from jobmap.io.map_surface import MapSurface, MemoryMap
from jobmap.markers import MarkerRegistry
from jobmap.store import AnnotationStore
from jobmap.sync import OverlaySync


@dataclass
class Session:
    settings: Settings
    client: httpx.AsyncClient
    surface: MapSurface
    bridge: PersistenceBridge
    store: AnnotationStore
    tracker: EditStateTracker
    markers: MarkerRegistry
    sync: OverlaySync
    controller: JobEditModeController


def build_session(
    settings: Settings,
    client: httpx.AsyncClient,
    surface: Optional[MapSurface] = None,
    notifier: Optional[Notifier] = None,
    prompter: Optional[Prompter] = None,
) -> Session:
    surface = surface if surface is not None else MemoryMap()
    bridge = PersistenceBridge(client)
    store = AnnotationStore(bridge, surface)
    tracker = EditStateTracker()
    markers = MarkerRegistry(surface)
    sync = OverlaySync(store, tracker, markers, surface)
    controller = JobEditModeController(
        store,
        tracker,
        sync,
        bridge,
        markers,
        notifier if notifier is not None else EchoNotifier(),
        prompter if prompter is not None else ConsolePrompter(),
    )
    return Session(settings, client, surface, bridge, store, tracker, markers, sync, controller)


@asynccontextmanager
async def open_session(
    settings: Settings,
    surface: Optional[MapSurface] = None,
    notifier: Optional[Notifier] = None,
    prompter: Optional[Prompter] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AsyncIterator[Session]:
    client = make_client(settings, transport=transport)
    try:
        yield build_session(settings, client, surface, notifier, prompter)
    finally:
        await client.aclose()
