from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any, Dict, List, Optional

from google.genai import types
from langchain_core.tools import tool

from models.gemini import get_client
from pipeline import config
from pipeline.errors import EnrichmentError, NarrationError, RecognitionError
from pipeline.state import GroundingSource
from utils.media import AudioPayload, ImagePayload, decode_image

log = logging.getLogger(__name__)

VISION_PROMPT = (
    "Identify this landmark. Return ONLY the specific name of the landmark. "
    f"If it is not a recognizable landmark, return '{config.UNKNOWN_SENTINEL}'. "
    "Do not add any punctuation or extra text."
)

DETAILS_PROMPT = (
    "Tell me a fascinating short history and 2 fun facts about {name}. "
    "Keep it engaging and concise (under 150 words total)."
)


def parse_landmark_name(text: Optional[str]) -> str:
    """Trims the model's answer and rejects empty or sentinel replies."""
    name = (text or "").strip()
    if not name or name.lower() == config.UNKNOWN_SENTINEL.lower():
        raise RecognitionError("Could not identify a landmark in this image.")
    return name


def extract_sources(response: Any) -> List[GroundingSource]:
    """
    Pulls web citations out of the first candidate's grounding metadata.

    Chunks without both a URI and a title are skipped. Order is kept and
    duplicates are not collapsed.
    """
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []

    sources = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        uri = getattr(web, "uri", None)
        title = getattr(web, "title", None)
        if uri and title:
            sources.append(GroundingSource(uri=uri, title=title))
    return sources


def extract_audio(response: Any) -> Optional[AudioPayload]:
    """Returns the first inline audio part of the response, if any."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None
    content = getattr(candidates[0], "content", None)
    for part in getattr(content, "parts", None) or []:
        blob = getattr(part, "inline_data", None)
        data = getattr(blob, "data", None)
        if data:
            if isinstance(data, bytes):
                data = base64.b64encode(data).decode("ascii")
            return AudioPayload(data=data, mime_type=getattr(blob, "mime_type", None) or "")
    return None


@tool
async def identify_landmark(
    image_data: str,
    mime_type: str,
    model: str = config.VISION_MODEL_NAME,
    timeout: float = config.STAGE_TIMEOUT_SECONDS,
) -> str:
    """
    Identifies the landmark shown in an image with a vision model.

    Args:
        image_data: Base64-encoded image bytes.
        mime_type: Image MIME type, e.g. "image/jpeg".
        model: Vision-capable Gemini model id.
        timeout: Seconds to wait for the provider.

    Returns:
        The bare landmark name.
    """
    raw = decode_image(ImagePayload(data=image_data, mime_type=mime_type))
    contents = [
        types.Part.from_bytes(data=raw, mime_type=mime_type),
        VISION_PROMPT,
    ]

    try:
        response = await asyncio.wait_for(
            get_client().aio.models.generate_content(model=model, contents=contents),
            timeout,
        )
    except asyncio.TimeoutError as e:
        raise RecognitionError("Timed out while identifying the landmark.") from e

    return parse_landmark_name(response.text)


@tool
async def fetch_landmark_details(
    landmark_name: str,
    model: str = config.SEARCH_MODEL_NAME,
    timeout: float = config.STAGE_TIMEOUT_SECONDS,
) -> Dict[str, Any]:
    """
    Fetches a short history and two fun facts about a landmark, grounded
    with Google Search.

    Returns:
        Dict with keys:
            - text    : history prose, or a fallback when the model returned none
            - sources : list of GroundingSource in provider order
    """
    try:
        response = await asyncio.wait_for(
            get_client().aio.models.generate_content(
                model=model,
                contents=DETAILS_PROMPT.format(name=landmark_name),
                config=types.GenerateContentConfig(
                    tools=[types.Tool(google_search=types.GoogleSearch())],
                ),
            ),
            timeout,
        )
        text = response.text or config.FALLBACK_DETAILS
        sources = extract_sources(response)
    except Exception as e:
        log.error("[SEARCH] %s", e)
        raise EnrichmentError("Failed to retrieve landmark details.") from e

    return {"text": text, "sources": sources}


@tool
async def generate_narration(
    script: str,
    voice: str = config.NARRATOR_VOICE,
    model: str = config.TTS_MODEL_NAME,
    timeout: float = config.STAGE_TIMEOUT_SECONDS,
) -> AudioPayload:
    """
    Synthesizes a spoken narration of `script` with a prebuilt voice.

    Returns:
        AudioPayload with base64 audio and the provider's MIME type.
    """
    try:
        response = await asyncio.wait_for(
            get_client().aio.models.generate_content(
                model=model,
                contents=script,
                config=types.GenerateContentConfig(
                    response_modalities=["AUDIO"],
                    speech_config=types.SpeechConfig(
                        voice_config=types.VoiceConfig(
                            prebuilt_voice_config=types.PrebuiltVoiceConfig(
                                voice_name=voice,
                            )
                        )
                    ),
                ),
            ),
            timeout,
        )
    except Exception as e:
        log.error("[TTS] %s", e)
        raise NarrationError("Failed to generate narration.") from e

    audio = extract_audio(response)
    if audio is None:
        raise NarrationError("No audio data generated.")
    return audio
