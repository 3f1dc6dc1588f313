# src/jobmap/io/console.py
"""
User-facing side channels: notifications and prompts.

The controller only depends on the two protocols. The console versions below
are what the CLI uses; a browser bridge would show toasts and modal dialogs
instead.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Protocol, TypedDict

import typer

from jobmap.models import Annotation


class EditResult(TypedDict):
    name: str
    description: str
    color: str


class Notifier(Protocol):
    def notify(self, message: str, kind: str = "info") -> None: ...


class Prompter(Protocol):
    async def confirm(self, question: str) -> bool: ...

    async def prompt_text(self, title: str, label: str, placeholder: str = "") -> Optional[str]: ...

    async def edit_annotation(
        self, annotation: Annotation, current_color: str, default_color: str
    ) -> Optional[EditResult]: ...


_COLORS = {"success": typer.colors.GREEN, "error": typer.colors.RED, "info": typer.colors.BLUE}


class EchoNotifier:
    def notify(self, message: str, kind: str = "info") -> None:
        typer.secho(message, fg=_COLORS.get(kind), err=(kind == "error"))


class ConsolePrompter:
    """
    typer prompts for a terminal session.

    Each prompt blocks on stdin, so it runs in a worker thread and the event
    loop keeps serving other tasks (pending fetches, timers) meanwhile.
    """

    async def confirm(self, question: str) -> bool:
        return await asyncio.to_thread(typer.confirm, question, default=False)

    async def prompt_text(self, title: str, label: str, placeholder: str = "") -> Optional[str]:
        return await asyncio.to_thread(self._prompt_text, title, label, placeholder)

    async def edit_annotation(self, annotation, current_color, default_color):
        return await asyncio.to_thread(self._edit_annotation, annotation, current_color, default_color)

    @staticmethod
    def _prompt_text(title, label, placeholder):
        typer.echo(title)
        value = typer.prompt(label, default=placeholder, show_default=bool(placeholder))
        return value.strip() or None

    @staticmethod
    def _edit_annotation(annotation, current_color, default_color):
        typer.echo(f"Edit {annotation.kind.value} #{annotation.id}")
        name = typer.prompt("Name", default=annotation.name)
        description = typer.prompt("Description", default=annotation.description or "", show_default=False)
        color = typer.prompt("Color", default=current_color or default_color)
        if not typer.confirm("Apply these changes?", default=True):
            return None
        return {"name": name, "description": description, "color": color}
