"""
Single-session orchestrator for the landmark pipeline.

`LandmarkSession` streams one run through the LangGraph pipeline and maps
each node completion onto the `Phase` state machine, so a front-end only
ever has to read `status` and, once READY, `result`.

Submitting while a run is in flight is rejected with `PipelineBusyError`.
Submitting from READY or FAILED resets the session first.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from pipeline.config import PipelineSettings
from pipeline.errors import DecodingError, PipelineBusyError, PipelineError
from pipeline.state import (
    ACTIVE_PHASES,
    IDLE,
    TERMINAL_PHASES,
    AnalysisResult,
    Event,
    Phase,
    PipelineStatus,
    transition,
)
from utils.media import AudioPayload, ImagePayload, PlayableAudio, decode_audio

log = logging.getLogger(__name__)

Listener = Callable[[PipelineStatus], None]


class AudioHandle:
    """Owns the narration clip for one result; decoded lazily, released on reset."""

    def __init__(self, payload: AudioPayload):
        self._payload: Optional[AudioPayload] = payload
        self._playable: Optional[PlayableAudio] = None

    @property
    def released(self) -> bool:
        return self._payload is None

    def playable(self) -> PlayableAudio:
        if self._payload is None:
            raise DecodingError("Audio has been released.")
        if self._playable is None:
            self._playable = decode_audio(self._payload)
        return self._playable

    def release(self) -> None:
        self._payload = None
        self._playable = None


class LandmarkSession:
    def __init__(self, settings: Optional[PipelineSettings] = None, graph=None):
        if graph is None:
            from pipeline.graph import pipeline

            graph = pipeline

        self.settings = settings or PipelineSettings()
        self._graph = graph
        self._status: PipelineStatus = IDLE
        self._image: Optional[ImagePayload] = None
        self._result: Optional[AnalysisResult] = None
        self._audio: Optional[AudioHandle] = None
        self._busy = False
        self._listeners: List[Listener] = []

    @property
    def status(self) -> PipelineStatus:
        return self._status

    @property
    def result(self) -> Optional[AnalysisResult]:
        if self._status.phase is not Phase.READY:
            return None
        return self._result

    @property
    def image(self) -> Optional[ImagePayload]:
        return self._image

    @property
    def audio(self) -> Optional[AudioHandle]:
        return self._audio

    @property
    def busy(self) -> bool:
        return self._busy

    def on_change(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _apply(self, event: Event, message: Optional[str] = None) -> None:
        self._status = transition(self._status, event, message)
        if self._status.message:
            log.info("[SESSION] %s: %s", self._status.phase.value, self._status.message)
        else:
            log.info("[SESSION] %s", self._status.phase.value)

        for listener in self._listeners:
            try:
                listener(self._status)
            except Exception:
                log.exception("[SESSION] listener failed")

    def _fail(self, message: str) -> None:
        if self._status.phase in ACTIVE_PHASES:
            self._apply(Event.FAILED, message)

    def reset(self) -> PipelineStatus:
        """Discards image, result, error and audio; returns to IDLE."""
        if self._busy:
            raise PipelineBusyError("Cannot reset while an analysis is running.")

        if self._audio is not None:
            self._audio.release()
        self._audio = None
        self._image = None
        self._result = None
        self._apply(Event.RESET)
        return self._status

    async def submit(self, raw: bytes, mime_type: Optional[str] = None) -> PipelineStatus:
        """
        Runs the whole pipeline for one image and returns the final status.

        Stage failures never propagate: they end the run in FAILED with a
        user-facing message.
        """
        if self._busy:
            raise PipelineBusyError()
        if self._status.phase in TERMINAL_PHASES:
            self.reset()

        self._busy = True
        try:
            self._apply(Event.IMAGE_SELECTED)
            await self._run(raw, mime_type)
        except asyncio.CancelledError:
            self._fail("The analysis was cancelled.")
            raise
        except Exception as e:
            log.exception("[SESSION] run aborted")
            self._fail(PipelineError(str(e)).message)
        finally:
            self._busy = False

        return self._status

    async def _run(self, raw: bytes, mime_type: Optional[str]) -> None:
        state = {"raw_image": raw, "mime_type": mime_type}
        config = {"configurable": {"settings": self.settings}}

        async for step in self._graph.astream(state, config=config):
            for node, delta in step.items():
                self._on_node(node, delta or {})

        if self._status.phase in ACTIVE_PHASES:
            self._fail("The analysis ended unexpectedly.")

    def _on_node(self, node: str, delta: Dict[str, Any]) -> None:
        error = delta.get("error")
        if error:
            self._fail(error)
            return

        if node == "encode":
            self._image = delta.get("image")
        elif node == "recognize":
            self._apply(Event.LANDMARK_IDENTIFIED)
        elif node == "enrich":
            if self.settings.narration_enabled:
                self._apply(Event.DETAILS_FETCHED)
        elif node == "assemble":
            result: AnalysisResult = delta["result"]
            self._result = result
            if result.audio is not None:
                self._audio = AudioHandle(result.audio)
            self._apply(Event.COMPLETED)
