from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import requests

import tempmail as app


class FakeResponse:
    def __init__(self, text: str, status_code: int = 200) -> None:
        self.text = text
        self.status_code = status_code
        self.json_calls = 0

    def json(self) -> Any:
        self.json_calls += 1
        return json.loads(self.text)

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")


class FakeSession:
    """Answers 1secmail GET requests by action and records every call."""

    def __init__(
        self,
        *,
        responses: dict[str, Any] | None = None,
        short_url: str | Exception = "https://is.gd/abc123",
    ) -> None:
        self.responses = responses or {}
        self.short_url = short_url
        self.get_calls: list[dict[str, Any]] = []
        self.post_calls: list[dict[str, Any]] = []
        self.last_response: FakeResponse | None = None

    def get(self, url: str, params: dict[str, Any] | None = None, timeout: Any = None) -> FakeResponse:
        params = params or {}
        self.get_calls.append(dict(params))
        action = params.get("action")
        if action not in self.responses:
            raise AssertionError(f"Unexpected action in test fake: {action}")
        payload = self.responses[action]
        if isinstance(payload, Exception):
            raise payload
        if isinstance(payload, FakeResponse):
            response = payload
        elif isinstance(payload, str):
            response = FakeResponse(payload)
        else:
            response = FakeResponse(json.dumps(payload))
        self.last_response = response
        return response

    def post(self, url: str, data: dict[str, Any] | None = None, timeout: Any = None) -> FakeResponse:
        self.post_calls.append(dict(data or {}))
        if isinstance(self.short_url, Exception):
            raise self.short_url
        return FakeResponse(self.short_url + "\n")

    def actions(self) -> list[str]:
        return [call["action"] for call in self.get_calls]


def make_store(tmp_path: Path) -> app.IdentityStore:
    return app.IdentityStore(config_dir=tmp_path / "config", default_root=tmp_path / "data")


def make_detail(**overrides: Any) -> app.MessageDetail:
    values: dict[str, Any] = {
        "id": 7,
        "sender": "Sender <sender@example.test>",
        "subject": "Hello",
        "date": "2026-10-18 10:00:00",
        "html_body": "<p>Hi there</p>",
        "text_body": "Hi there",
        "attachments": [],
    }
    values.update(overrides)
    return app.MessageDetail(**values)


MESSAGE_JSON = {
    "id": 7,
    "from": "sender@example.test",
    "subject": "Your code",
    "date": "2026-10-18 10:00:00",
    "attachments": [{"filename": "invoice.pdf", "contentType": "application/pdf", "size": 1024}],
    "body": "<p>Code: 1234</p>",
    "textBody": "Code: 1234",
    "htmlBody": "<p>Code: 1234</p>",
}
