# src/jobmap/cli.py
"""
Command-line interface for jobmap.

A headless driver over the annotation engine, handy for operators and for
checking a server by hand:
- List a job's annotations as JSON
- Drop a pin on a job
- Edit or recolor an annotation, then save it
- Delete an annotation
- Check configuration and connectivity
"""

from dotenv import load_dotenv
load_dotenv(override=True)  # picks up a .env file in the working directory

import asyncio
import json
import logging
from typing import Optional

import typer

from jobmap.config import load_settings
from jobmap.errors import JobMapError
from jobmap.io.console import ConsolePrompter, EditResult
from jobmap.logging_config import setup_logging
from jobmap.models import Annotation, Job, Position
from jobmap.session import open_session

app = typer.Typer(help="Job map annotations")


class PresetPrompter(ConsolePrompter):
    """Answers from command-line options first; asks on the console for anything missing."""

    def __init__(self, name: Optional[str] = None, description: Optional[str] = None,
                 yes: bool = False, edit: Optional[EditResult] = None):
        self._answers = [a for a in (name, description) if a is not None]
        self._yes = yes
        self._edit = edit

    async def confirm(self, question: str) -> bool:
        if self._yes:
            return True
        return await super().confirm(question)

    async def prompt_text(self, title, label, placeholder=""):
        if self._answers:
            return self._answers.pop(0)
        return await super().prompt_text(title, label, placeholder)

    async def edit_annotation(self, annotation, current_color, default_color):
        if self._edit is not None:
            return self._edit
        return await super().edit_annotation(annotation, current_color, default_color)


def _as_dict(a: Annotation) -> dict:
    return {
        "id": a.id,
        "job_id": a.job_id,
        "type": a.kind.value,
        "name": a.name,
        "description": a.description,
        "coordinates": [p.to_dict() for p in a.coordinates],
        "style": dict(a.style),
        "updated_at": a.updated_at,
    }


def _job(job_id: int, lat: float, lng: float) -> Job:
    # the engine only needs the marker position for connection lines
    return Job(id=job_id, position=Position(lat, lng))


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")):
    settings = load_settings()
    setup_logging(logging.DEBUG if verbose else settings.log_level_value)


@app.command()
def annotations(
    job_id: int,
    lat: float = typer.Option(0.0, help="Job marker latitude"),
    lng: float = typer.Option(0.0, help="Job marker longitude"),
):
    """Print a job's annotations (normalized) as JSON."""

    async def run():
        async with open_session(load_settings()) as s:
            anns = await s.controller.register_job(_job(job_id, lat, lng))
            return {
                "job_id": job_id,
                "count": len(anns),
                "connection_lines": s.sync.connection_line_count(job_id),
                "annotations": [_as_dict(a) for a in anns],
            }

    typer.echo(json.dumps(asyncio.run(run()), indent=2))


@app.command()
def add_pin(
    job_id: int,
    lat: float,
    lng: float,
    name: Optional[str] = typer.Option(None, "--name", help="Pin name (prompted if missing)"),
    description: Optional[str] = typer.Option(None, "--description", help="Optional description"),
):
    """Create a pin annotation on a job."""

    async def run():
        # with --name given, a missing --description means "none", not "ask"
        prompter = PresetPrompter(name=name, description=(description or "") if name else description)
        async with open_session(load_settings(), prompter=prompter) as s:
            await s.controller.register_job(_job(job_id, lat, lng))
            return await s.controller.add_pin(job_id, Position(lat, lng))

    created = asyncio.run(run())
    if created is None:
        raise typer.Exit(code=1)
    typer.echo(json.dumps(_as_dict(created), indent=2))


@app.command()
def edit(
    job_id: int,
    annotation_id: int,
    color: Optional[str] = typer.Option(None, "--color", help="New color; skips the dialog"),
):
    """Edit an annotation's name/description/color, then save it."""

    async def run():
        preset = None
        async with open_session(load_settings()) as s:
            await s.controller.register_job(_job(job_id, 0.0, 0.0))
            ann = s.store.find_by_id(annotation_id)
            if ann is not None and color:
                preset = {"name": ann.name, "description": ann.description, "color": color}
            s.controller.prompter = PresetPrompter(edit=preset)
            if not await s.controller.edit_annotation(annotation_id):
                return False
            return await s.controller.save_annotation(annotation_id)

    if not asyncio.run(run()):
        raise typer.Exit(code=1)


@app.command()
def delete(
    job_id: int,
    annotation_id: int,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete an annotation."""

    async def run():
        async with open_session(load_settings(), prompter=PresetPrompter(yes=yes)) as s:
            await s.controller.register_job(_job(job_id, 0.0, 0.0))
            return await s.controller.delete_annotation(annotation_id)

    if not asyncio.run(run()):
        raise typer.Exit(code=1)


@app.command()
def config_check(job_id: Optional[int] = typer.Option(None, "--job", help="Also try loading this job")):
    """
    Show the effective settings (secrets masked) and optionally hit the API.
    """
    settings = load_settings()
    typer.echo(json.dumps({
        "base_url": settings.base_url,
        "timeout": settings.timeout,
        "session_cookie": "set" if settings.session_cookie else "not set",
        "api_token": "set" if settings.api_token else "not set",
        "log_level": settings.log_level,
    }, indent=2))

    if job_id is None:
        return

    async def run():
        async with open_session(settings) as s:
            return await s.bridge.fetch_annotations(job_id)

    try:
        anns = asyncio.run(run())
    except JobMapError as e:
        typer.echo(f"API check failed: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"API ok: job {job_id} has {len(anns or [])} annotation(s)")


if __name__ == "__main__":
    app()
