"""Shared test helpers."""

from __future__ import annotations

from typing import Any

import httpx


class FakeEndpoint:
    """Webhook receiver backed by ``httpx.MockTransport``.

    Records every request and replies with scripted responses in order:
    an int is a status code, an exception is raised as a transport error,
    a ``httpx.Response`` is returned as is. Once the script runs out every
    request gets ``200 {"ok": true}``.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.script: list[int | Exception | httpx.Response] = []

    def reply(self, *replies: int | Exception | httpx.Response) -> None:
        self.script.extend(replies)

    def always(self, status_code: int) -> None:
        self.script = [status_code] * 50

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.script:
            return httpx.Response(200, json={"ok": True})
        reply = self.script.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        return httpx.Response(reply, text="boom" if reply >= 300 else "")

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def webhook_config(**overrides: Any) -> dict[str, Any]:
    """Minimal valid webhook configuration."""
    config: dict[str, Any] = {
        "id": "gate-alerts",
        "url": "https://hooks.example.edu/gates",
        "events": ["entry.recorded"],
    }
    config.update(overrides)
    return config
