from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from langchain_core.runnables import RunnableConfig

from pipeline.config import PipelineSettings
from pipeline.errors import NarrationError, PipelineError
from pipeline.state import AnalysisResult, LandmarkState
from pipeline.tools import fetch_landmark_details, generate_narration, identify_landmark
from utils.media import encode_image

log = logging.getLogger(__name__)


def get_settings(config: Optional[RunnableConfig]) -> PipelineSettings:
    """Reads per-run settings from `configurable`, falling back to env defaults."""
    configurable = (config or {}).get("configurable") or {}
    settings = configurable.get("settings")
    return settings if settings is not None else PipelineSettings()


def compose_script(landmark_name: str, history_text: str, intro: str) -> str:
    """Narration script: a short intro naming the landmark, then the history."""
    try:
        opening = intro.format(name=landmark_name)
    except (KeyError, IndexError, ValueError) as e:
        raise NarrationError("The narration intro template is invalid.") from e
    return f"{opening} {history_text}".strip()


def failure(tag: str, exc: BaseException) -> Dict[str, Any]:
    """Converts any exception into the user-facing `error` field."""
    if isinstance(exc, PipelineError):
        log.error("[%s] %s", tag, exc)
        return {"error": exc.message}
    log.exception("[%s] unexpected failure", tag)
    return {"error": PipelineError(str(exc)).message}


def node_encode(state: LandmarkState) -> Dict[str, Any]:
    """Encodes the submitted image bytes into a transport payload."""
    raw = state.get("raw_image") or b""
    log.info("[CODEC] %d bytes, mime=%s", len(raw), state.get("mime_type"))

    try:
        return {"image": encode_image(raw, state.get("mime_type")), "error": None}
    except Exception as e:
        return failure("CODEC", e)


async def node_recognize(
    state: LandmarkState, config: Optional[RunnableConfig] = None
) -> Dict[str, Any]:
    """Node wrapper around the vision recognition tool."""
    settings = get_settings(config)
    image = state["image"]

    try:
        name = await identify_landmark.ainvoke(
            {
                "image_data": image.data,
                "mime_type": image.mime_type,
                "model": settings.vision_model,
                "timeout": settings.stage_timeout,
            }
        )
    except Exception as e:
        return failure("VISION", e)

    log.info("[VISION] identified '%s'", name)
    return {"landmark_name": name}


async def node_enrich(
    state: LandmarkState, config: Optional[RunnableConfig] = None
) -> Dict[str, Any]:
    """Node wrapper around the search-grounded details tool."""
    settings = get_settings(config)
    name = state["landmark_name"]

    try:
        details = await fetch_landmark_details.ainvoke(
            {
                "landmark_name": name,
                "model": settings.search_model,
                "timeout": settings.stage_timeout,
            }
        )
    except Exception as e:
        return failure("SEARCH", e)

    log.info("[SEARCH] %d chars, %d sources", len(details["text"]), len(details["sources"]))
    return {"history_text": details["text"], "sources": list(details["sources"])}


async def node_narrate(
    state: LandmarkState, config: Optional[RunnableConfig] = None
) -> Dict[str, Any]:
    """Node wrapper around speech synthesis."""
    settings = get_settings(config)
    script = None

    try:
        script = compose_script(
            state["landmark_name"], state["history_text"], settings.script_intro
        )
        log.info("[TTS] voice=%s, %d chars", settings.voice, len(script))
        audio = await generate_narration.ainvoke(
            {
                "script": script,
                "voice": settings.voice,
                "model": settings.tts_model,
                "timeout": settings.stage_timeout,
            }
        )
    except Exception as e:
        failed = failure("TTS", e)
        failed["script"] = script
        return failed

    return {"script": script, "audio": audio}


def node_assemble(state: LandmarkState) -> Dict[str, Any]:
    """
    Packs the stage outputs into an `AnalysisResult`.

    Only reached when every enabled stage succeeded.
    """
    try:
        result = AnalysisResult(
            landmark_name=state["landmark_name"],
            history_text=state["history_text"],
            sources=state.get("sources") or [],
            audio=state.get("audio"),
        )
    except Exception as e:
        return failure("RESULT", e)

    log.info("[RESULT] ready: %s", result.landmark_name)
    return {"result": result}
