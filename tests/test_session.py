from __future__ import annotations

import asyncio
import base64

import pytest
from conftest import PCM, audio_response, slow, text_response, web_chunk

from pipeline.config import PipelineSettings
from pipeline.errors import PipelineBusyError
from pipeline.session import LandmarkSession
from pipeline.state import Phase

JPEG = b"\xff\xd8\xff\xe0fake-jpeg"


def make_session(**kw):
    session = LandmarkSession(settings=PipelineSettings(**kw))
    phases = []
    session.on_change(lambda s: phases.append(s.phase))
    return session, phases


def assert_clean_idle(session):
    assert session.status.phase is Phase.IDLE
    assert session.status.message is None
    assert session.result is None
    assert session.image is None
    assert session.audio is None


def test_golden_gate_end_to_end(gemini):
    gemini.responses = [
        text_response("Golden Gate Bridge"),
        text_response("Built in 1937...", [web_chunk("https://a.co", "History")]),
        audio_response(),
    ]
    session, phases = make_session()
    status = asyncio.run(session.submit(JPEG, "image/jpeg"))

    assert status.phase is Phase.READY
    assert phases == [
        Phase.ANALYZING_IMAGE,
        Phase.FETCHING_INFO,
        Phase.GENERATING_AUDIO,
        Phase.READY,
    ]
    result = session.result
    assert result.landmark_name == "Golden Gate Bridge"
    assert result.history_text == "Built in 1937..."
    assert [(s.uri, s.title) for s in result.sources] == [("https://a.co", "History")]
    assert base64.b64decode(result.audio.data) == PCM
    assert session.audio.playable().mime_type == "audio/wav"
    assert session.image.mime_type == "image/jpeg"

    assert "Golden Gate Bridge" in gemini.calls[1]["contents"]
    assert gemini.calls[2]["contents"] == "I've identified this as Golden Gate Bridge. Built in 1937..."


@pytest.mark.parametrize("reply", ["Unknown", " unknown\n", "UNKNOWN"])
def test_sentinel_fails_without_enrichment(gemini, reply):
    gemini.responses = [text_response(reply)]
    session, phases = make_session()
    status = asyncio.run(session.submit(JPEG, "image/jpeg"))

    assert status.phase is Phase.FAILED
    assert status.message == "Could not identify a landmark in this image."
    assert phases == [Phase.ANALYZING_IMAGE, Phase.FAILED]
    assert len(gemini.calls) == 1
    assert session.result is None


def test_empty_details_fall_back_and_still_narrate(gemini):
    gemini.responses = [text_response("Big Ben"), text_response(""), audio_response()]
    session, _ = make_session()
    asyncio.run(session.submit(JPEG, "image/jpeg"))

    assert session.status.phase is Phase.READY
    assert session.result.history_text == "No details found."
    assert gemini.calls[2]["contents"].endswith("No details found.")


def test_enrichment_failure(gemini):
    gemini.responses = [text_response("Big Ben"), TimeoutError("socket")]
    session, phases = make_session()
    status = asyncio.run(session.submit(JPEG, "image/jpeg"))

    assert status.message == "Failed to retrieve landmark details."
    assert phases == [Phase.ANALYZING_IMAGE, Phase.FETCHING_INFO, Phase.FAILED]
    assert len(gemini.calls) == 2


def test_missing_audio_fails_without_result(gemini):
    gemini.responses = [text_response("Big Ben"), text_response("Finished in 1859."), text_response(None)]
    session, phases = make_session()
    status = asyncio.run(session.submit(JPEG, "image/jpeg"))

    assert status.phase is Phase.FAILED
    assert status.message == "No audio data generated."
    assert phases[-2:] == [Phase.GENERATING_AUDIO, Phase.FAILED]
    assert session.result is None
    assert session.audio is None


def test_narration_disabled_skips_audio(gemini):
    gemini.responses = [text_response("Big Ben"), text_response("Finished in 1859.")]
    session, phases = make_session(narration_enabled=False)
    asyncio.run(session.submit(JPEG, "image/jpeg"))

    assert phases == [Phase.ANALYZING_IMAGE, Phase.FETCHING_INFO, Phase.READY]
    assert session.result.audio is None
    assert session.audio is None
    assert len(gemini.calls) == 2


def test_encoding_failure_makes_no_calls(gemini):
    session, phases = make_session()
    status = asyncio.run(session.submit(b"", "image/jpeg"))

    assert status.phase is Phase.FAILED
    assert status.message == "Cannot encode an empty image."
    assert phases == [Phase.ANALYZING_IMAGE, Phase.FAILED]
    assert gemini.calls == []


def test_unexpected_provider_error_still_fails(gemini):
    gemini.responses = [RuntimeError("API key not valid")]
    session, _ = make_session()
    status = asyncio.run(session.submit(JPEG, "image/jpeg"))

    assert status.phase is Phase.FAILED
    assert status.message == "API key not valid"
    assert not session.busy


def test_stage_timeout(gemini):
    gemini.responses = [slow(text_response("Big Ben"))]
    session, _ = make_session(stage_timeout=0.05)
    status = asyncio.run(session.submit(JPEG, "image/jpeg"))

    assert status.message == "Timed out while identifying the landmark."


def test_reset_from_ready_releases_everything(gemini):
    gemini.responses = [text_response("Big Ben"), text_response("Text"), audio_response()]
    session, _ = make_session()
    asyncio.run(session.submit(JPEG, "image/jpeg"))
    handle = session.audio

    session.reset()

    assert_clean_idle(session)
    assert handle.released


def test_reset_from_failed(gemini):
    gemini.responses = [text_response("Unknown")]
    session, _ = make_session()
    asyncio.run(session.submit(JPEG, "image/jpeg"))

    session.reset()
    assert_clean_idle(session)


def test_resubmit_after_result_replaces_it(gemini):
    gemini.responses = [
        text_response("Big Ben"), text_response("One"), audio_response(),
        text_response("Colosseum"), text_response("Two"), audio_response(),
    ]
    session, phases = make_session()
    asyncio.run(session.submit(JPEG, "image/jpeg"))
    first_audio = session.audio
    asyncio.run(session.submit(JPEG, "image/jpeg"))

    assert session.result.landmark_name == "Colosseum"
    assert first_audio.released
    assert Phase.IDLE in phases


def test_busy_session_rejects_submit_and_reset(gemini):
    gemini.responses = [slow(text_response("Big Ben"), 0.3), text_response("Text"), audio_response()]
    session, _ = make_session()

    async def scenario():
        run = asyncio.create_task(session.submit(JPEG, "image/jpeg"))
        while not gemini.calls:
            await asyncio.sleep(0.01)

        assert session.busy
        assert session.status.phase is Phase.ANALYZING_IMAGE
        with pytest.raises(PipelineBusyError):
            await session.submit(JPEG, "image/jpeg")
        with pytest.raises(PipelineBusyError):
            session.reset()

        return await run

    status = asyncio.run(scenario())
    assert status.phase is Phase.READY
    assert len(gemini.calls) == 3


def test_listener_errors_do_not_stall(gemini):
    gemini.responses = [text_response("Unknown")]
    session, _ = make_session()

    def broken(status):
        raise ValueError("render failed")

    session.on_change(broken)
    status = asyncio.run(session.submit(JPEG, "image/jpeg"))
    assert status.phase is Phase.FAILED


def test_cancelled_run_fails_and_frees_session(gemini):
    gemini.responses = [slow(text_response("Big Ben"), 5)]
    session, phases = make_session()

    async def scenario():
        run = asyncio.create_task(session.submit(JPEG, "image/jpeg"))
        while not gemini.calls:
            await asyncio.sleep(0.01)
        run.cancel()
        with pytest.raises(asyncio.CancelledError):
            await run

    asyncio.run(scenario())

    assert session.status.phase is Phase.FAILED
    assert session.status.message == "The analysis was cancelled."
    assert phases == [Phase.ANALYZING_IMAGE, Phase.FAILED]
    assert not session.busy
    assert session.result is None

    session.reset()
    assert_clean_idle(session)
