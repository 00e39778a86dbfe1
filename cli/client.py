from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client that plays the device and phone against the companion."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=30.0)

    @property
    def _prefix(self) -> str:
        return f"/sessions/{self._config.session_id}"

    def close(self) -> None:
        self._client.close()

    def send_ready(self) -> Optional[str]:
        return self._post_trigger(f"{self._prefix}/ready", None)

    def send_request(self, flags: Dict[str, int]) -> Optional[str]:
        return self._post_trigger(f"{self._prefix}/messages", flags)

    def report_position(
        self,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        error_code: Optional[int] = None,
        message: Optional[str] = None,
    ) -> int:
        body: Dict[str, Any] = {}
        if error_code is not None:
            body = {"error_code": error_code, "message": message}
        else:
            body = {"latitude": latitude, "longitude": longitude}
        try:
            response = self._client.post(f"{self._prefix}/position", json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return int(response.json().get("waiting", 0))

    def get_outbox(self) -> List[Dict[str, Any]]:
        try:
            response = self._client.get(f"{self._prefix}/outbox")
            if response.status_code == 404:
                return []
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return list(response.json().get("messages") or [])

    def acknowledge(self, message_id: str, delivered: bool = True) -> Dict[str, Any]:
        try:
            response = self._client.post(
                f"{self._prefix}/outbox/{message_id}/ack",
                json={"delivered": delivered},
            )
            if response.status_code == 404:
                raise typer.BadParameter(f"Message {message_id} was not found.")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def wait_for_message(self, message_id: str, interval: float, timeout: float) -> Dict[str, Any]:
        deadline = time.monotonic() + timeout
        while time.monotonic() <= deadline:
            for entry in self.get_outbox():
                if entry.get("message_id") == message_id:
                    return entry
            time.sleep(interval)
        typer.secho(
            f"Timed out waiting for message {message_id} in the outbox.",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)

    def _post_trigger(self, path: str, body: Optional[Dict[str, Any]]) -> Optional[str]:
        try:
            response = self._client.post(path, json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        message_id = response.json().get("message_id")
        if message_id is not None and not isinstance(message_id, str):
            raise typer.BadParameter("Unexpected response payload when sending trigger.")
        return message_id

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
