from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

PCM = b"\x01\x00\x02\x00" * 8


def text_response(text, chunks=None):
    metadata = SimpleNamespace(grounding_chunks=chunks)
    return SimpleNamespace(
        text=text,
        candidates=[SimpleNamespace(grounding_metadata=metadata, content=None)],
    )


def web_chunk(uri, title):
    return SimpleNamespace(web=SimpleNamespace(uri=uri, title=title))


def audio_response(data=PCM, mime_type="audio/L16;codec=pcm;rate=24000"):
    part = SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type=mime_type))
    return SimpleNamespace(
        text=None,
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))],
    )


def slow(response, seconds=1.0):
    async def respond():
        await asyncio.sleep(seconds)
        return response

    return respond


class FakeGemini:
    """Stands in for `genai.Client`; replays queued responses in call order."""

    def __init__(self):
        self.responses = []
        self.calls = []
        self.aio = SimpleNamespace(models=SimpleNamespace(generate_content=self.generate_content))

    async def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return await response()
        return response


@pytest.fixture
def gemini(monkeypatch):
    fake = FakeGemini()
    monkeypatch.setattr("pipeline.tools.get_client", lambda: fake)
    return fake
