"""
Configuration for the landmark pipeline.

Values come from environment variables, optionally loaded from a `.env`
file in the project root. Model identifiers and the narrator voice are
provider configuration and can be swapped without touching the pipeline.
"""

import os
import warnings
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

_project_root = Path(__file__).parent.parent
load_dotenv(_project_root / ".env")


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY", "")
if not GEMINI_API_KEY:
    warnings.warn(
        "GEMINI_API_KEY not set. Please set it in your .env file or environment."
    )

# Model configuration
VISION_MODEL_NAME = os.environ.get("VISION_MODEL_NAME", "gemini-3-pro-preview")
SEARCH_MODEL_NAME = os.environ.get("SEARCH_MODEL_NAME", "gemini-2.5-flash")
TTS_MODEL_NAME = os.environ.get("TTS_MODEL_NAME", "gemini-2.5-flash-preview-tts")
NARRATOR_VOICE = os.environ.get("NARRATOR_VOICE", "Fenrir")

# Pipeline behaviour
NARRATION_ENABLED = _env_bool("NARRATION_ENABLED", True)
STAGE_TIMEOUT_SECONDS = float(os.environ.get("STAGE_TIMEOUT_SECONDS", "60"))
SCRIPT_INTRO = os.environ.get("SCRIPT_INTRO", "I've identified this as {name}.")

UNKNOWN_SENTINEL = "Unknown"
FALLBACK_DETAILS = "No details found."


class PipelineSettings(BaseModel):
    """Per-session provider settings, handed to graph nodes via `configurable`."""

    vision_model: str = Field(default=VISION_MODEL_NAME)
    search_model: str = Field(default=SEARCH_MODEL_NAME)
    tts_model: str = Field(default=TTS_MODEL_NAME)
    voice: str = Field(default=NARRATOR_VOICE)
    narration_enabled: bool = Field(default=NARRATION_ENABLED)
    stage_timeout: float = Field(default=STAGE_TIMEOUT_SECONDS, gt=0)
    script_intro: str = Field(default=SCRIPT_INTRO, validate_default=True)

    @field_validator("script_intro")
    @classmethod
    def _intro_only_uses_name(cls, v: str) -> str:
        try:
            v.format(name="")
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(f"script_intro may only reference {{name}}: {e}") from e
        return v
