"""
Shared fixtures for VoiceFlow tests.

Nothing here talks to the network: REST services get an httpx client backed
by httpx.MockTransport and SDK services get a mocked client object.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import numpy as np
import pytest

from voiceflow.config import Config
from voiceflow.credentials import KeyStore


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeStatusError(Exception):
    """Mimics an SDK status error: carries status_code and a response body."""

    def __init__(self, status_code: int, body: str = "boom"):
        super().__init__(f"Error code: {status_code}")
        self.status_code = status_code
        self.response = SimpleNamespace(text=body)


def mock_client(handler) -> httpx.AsyncClient:
    """httpx client whose requests are answered by ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def pcm_chunk(amplitude: int, seconds: float = 0.5, sample_rate: int = 16000) -> bytes:
    """Constant-amplitude 16-bit mono PCM."""
    return np.full(int(sample_rate * seconds), amplitude, dtype="<i2").tobytes()


@pytest.fixture
def config(tmp_path):
    cfg = Config(home=tmp_path / "home")
    cfg.ensure_dirs()
    return cfg


@pytest.fixture
def environ():
    return {}


@pytest.fixture
def keys(config, environ):
    return KeyStore(config.env_path, environ=environ)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def openai_client():
    """MagicMock shaped like openai.AsyncOpenAI."""
    client = MagicMock()
    client.audio.transcriptions.create = AsyncMock(return_value=SimpleNamespace(text="hello world"))
    speech = MagicMock()
    speech.aread = AsyncMock(return_value=b"ID3-mp3-bytes")
    client.audio.speech.create = AsyncMock(return_value=speech)
    client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content="A short summary."))]
    ))
    client.images.generate = AsyncMock(return_value=SimpleNamespace(
        data=[SimpleNamespace(b64_json="iVBORw0KGgo=")]
    ))
    return client
