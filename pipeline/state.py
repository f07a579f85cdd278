from __future__ import annotations

from enum import Enum
from typing import List, Optional, TypedDict

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pipeline.errors import InvalidTransitionError
from utils.media import AudioPayload, ImagePayload


class Phase(str, Enum):
    IDLE = "IDLE"
    ANALYZING_IMAGE = "ANALYZING_IMAGE"
    FETCHING_INFO = "FETCHING_INFO"
    GENERATING_AUDIO = "GENERATING_AUDIO"
    READY = "READY"
    FAILED = "FAILED"


ACTIVE_PHASES = (Phase.ANALYZING_IMAGE, Phase.FETCHING_INFO, Phase.GENERATING_AUDIO)
TERMINAL_PHASES = (Phase.READY, Phase.FAILED)


class Event(str, Enum):
    IMAGE_SELECTED = "IMAGE_SELECTED"
    LANDMARK_IDENTIFIED = "LANDMARK_IDENTIFIED"
    DETAILS_FETCHED = "DETAILS_FETCHED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    RESET = "RESET"


class PipelineStatus(BaseModel):
    """Session-wide progress value. `message` is only ever set on FAILED."""

    model_config = ConfigDict(frozen=True)

    phase: Phase = Phase.IDLE
    message: Optional[str] = None

    @classmethod
    def failed(cls, message: str) -> "PipelineStatus":
        return cls(phase=Phase.FAILED, message=message)


IDLE = PipelineStatus()

_FORWARD = {
    (Phase.IDLE, Event.IMAGE_SELECTED): Phase.ANALYZING_IMAGE,
    (Phase.ANALYZING_IMAGE, Event.LANDMARK_IDENTIFIED): Phase.FETCHING_INFO,
    (Phase.FETCHING_INFO, Event.DETAILS_FETCHED): Phase.GENERATING_AUDIO,
    # narration disabled: straight from enrichment to ready
    (Phase.FETCHING_INFO, Event.COMPLETED): Phase.READY,
    (Phase.GENERATING_AUDIO, Event.COMPLETED): Phase.READY,
}


def transition(
    status: PipelineStatus, event: Event, message: Optional[str] = None
) -> PipelineStatus:
    """
    Pure transition function for the pipeline state machine.

    Forward events move one step along the pipeline, FAILED jumps from any
    active phase to FAILED, and RESET returns a terminal (or idle) status
    to IDLE. Anything else raises `InvalidTransitionError`.
    """
    phase = status.phase

    if event is Event.RESET:
        if phase in ACTIVE_PHASES:
            raise InvalidTransitionError(f"Cannot reset while {phase.value}.")
        return IDLE

    if event is Event.FAILED:
        if phase not in ACTIVE_PHASES:
            raise InvalidTransitionError(f"Cannot fail from {phase.value}.")
        return PipelineStatus.failed(message or "Something went wrong. Please try again.")

    target = _FORWARD.get((phase, event))
    if target is None:
        raise InvalidTransitionError(f"{event.value} is not valid from {phase.value}.")
    return PipelineStatus(phase=target)


class GroundingSource(BaseModel):
    model_config = ConfigDict(frozen=True)

    uri: str = Field(min_length=1)
    title: str = Field(min_length=1)


class AnalysisResult(BaseModel):
    """Everything the overlay needs once the pipeline is READY."""

    model_config = ConfigDict(frozen=True)

    landmark_name: str
    history_text: str
    sources: List[GroundingSource] = Field(default_factory=list)
    audio: Optional[AudioPayload] = None

    @field_validator("landmark_name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("landmark_name must not be blank")
        return v


class LandmarkState(TypedDict, total=False):
    """
    State passed between LangGraph nodes for a single run.
    """

    raw_image: bytes
    mime_type: Optional[str]

    # Output of the codec
    image: Optional[ImagePayload]

    # Output of recognition
    landmark_name: Optional[str]

    # Output of enrichment
    history_text: Optional[str]
    sources: Optional[List[GroundingSource]]

    # Output of narration
    script: Optional[str]
    audio: Optional[AudioPayload]

    # Assembled on success only
    result: Optional[AnalysisResult]

    # User-facing failure message; set by the first failing node
    error: Optional[str]
