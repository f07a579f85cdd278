from __future__ import annotations

from google import genai

from pipeline import config

_client = None


def get_client() -> genai.Client:
    """
    Returns a singleton Gemini client.

    Uses `GEMINI_API_KEY` from the environment / `.env`.
    """
    global _client

    if _client is None:
        _client = genai.Client(api_key=config.GEMINI_API_KEY or None)

    return _client
