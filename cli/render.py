from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable

import typer

_STATUS_COLORS = {
    "ready": typer.colors.BLUE,
    "reporting": typer.colors.GREEN,
    "failed": typer.colors.RED,
}


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _format_epoch(value: Any) -> Any:
    if isinstance(value, int):
        stamp = datetime.fromtimestamp(value, tz=timezone.utc)
        return f"{value} ({stamp:%Y-%m-%d %H:%M} UTC)"
    return value


def render_message(entry: Dict[str, Any]) -> None:
    payload = entry.get("payload") or {}
    echo_heading(f"Message {entry.get('message_id')}")
    status = payload.get("status")
    typer.secho(f"status: {status}", fg=_STATUS_COLORS.get(status))
    echo_key_values(
        [
            (key, _format_epoch(value) if key in {"sunrise", "sunset"} else value)
            for key, value in payload.items()
            if key != "status"
        ]
    )


def render_outbox(entries: list[Dict[str, Any]]) -> None:
    if not entries:
        typer.echo("Outbox is empty.")
        return
    for index, entry in enumerate(entries):
        if index:
            typer.echo()
        render_message(entry)
