"""
Pytest configuration and fixtures for the test suite.
"""
import io
import json
import os
import sys
from typing import Dict, List

import httpx
import pytest
from rich.console import Console

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from krocli.error_handler import TokenNotFoundError
from krocli.token_vault import SecretBackend, TokenVault


class InMemoryBackend(SecretBackend):
    """Secret backend holding entries in a dict."""

    name = "memory"

    def __init__(self):
        self.entries: Dict[str, str] = {}

    def set_secret(self, key, payload):
        self.entries[key] = payload

    def get_secret(self, key):
        if key not in self.entries:
            raise TokenNotFoundError(key)
        return self.entries[key]

    def delete_secret(self, key):
        if key not in self.entries:
            raise TokenNotFoundError(key)
        del self.entries[key]


@pytest.fixture
def config_dir(tmp_path):
    """Configuration directory path; not created up front."""
    return tmp_path / "config" / "krocli"


@pytest.fixture
def memory_backend():
    return InMemoryBackend()


@pytest.fixture
def memory_vault(memory_backend):
    return TokenVault(memory_backend)


@pytest.fixture
def console():
    """A rich console that writes to a buffer instead of the terminal."""
    return Console(file=io.StringIO(), width=200, force_terminal=False)


@pytest.fixture
def write_json():
    """Write a JSON document, creating parent directories."""

    def _write(path, data):
        path.parent.mkdir(parents=True, exist_ok=True)
        text = data if isinstance(data, str) else json.dumps(data)
        path.write_text(text, encoding="utf-8")
        return path

    return _write


class RecordingTransport:
    """
    httpx.MockTransport wrapper that records requests and replies with a
    canned JSON body.
    """

    def __init__(self, body=None, status_code: int = 200):
        self.body = {"ok": True} if body is None else body
        self.status_code = status_code
        self.requests: List[httpx.Request] = []
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=self.transport)

    def form(self, index: int = -1) -> Dict[str, str]:
        """Decode the form body of a recorded request."""
        from urllib.parse import parse_qs

        parsed = parse_qs(self.requests[index].content.decode("utf-8"))
        return {k: v[0] for k, v in parsed.items()}


@pytest.fixture
def telegram_api():
    """Factory for a recording Telegram API transport."""

    def _make(body=None, status_code=200):
        return RecordingTransport(body, status_code)

    return _make
