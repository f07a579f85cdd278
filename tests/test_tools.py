from __future__ import annotations

import asyncio
import base64

import pytest
from conftest import PCM, audio_response, slow, text_response, web_chunk

from pipeline.errors import EnrichmentError, NarrationError, RecognitionError
from pipeline.tools import (
    fetch_landmark_details,
    generate_narration,
    identify_landmark,
    parse_landmark_name,
)

IMAGE = {"image_data": base64.b64encode(b"jpeg-bytes").decode(), "mime_type": "image/jpeg"}


@pytest.mark.parametrize("reply", ["Unknown", "unknown", "  UNKNOWN \n", "", "   ", None])
def test_parse_rejects_sentinel_and_blank(reply):
    with pytest.raises(RecognitionError, match="Could not identify a landmark in this image."):
        parse_landmark_name(reply)


def test_parse_trims_name():
    assert parse_landmark_name("  Golden Gate Bridge\n") == "Golden Gate Bridge"


def test_identify_sends_image_and_instruction(gemini):
    gemini.responses = [text_response("Eiffel Tower")]
    name = asyncio.run(identify_landmark.ainvoke({**IMAGE, "model": "vision-x"}))

    assert name == "Eiffel Tower"
    call = gemini.calls[0]
    assert call["model"] == "vision-x"
    image_part, prompt = call["contents"]
    assert image_part.inline_data.data == b"jpeg-bytes"
    assert image_part.inline_data.mime_type == "image/jpeg"
    assert "Return ONLY" in prompt and "'Unknown'" in prompt


def test_identify_timeout(gemini):
    gemini.responses = [slow(text_response("Eiffel Tower"))]
    with pytest.raises(RecognitionError, match="Timed out"):
        asyncio.run(identify_landmark.ainvoke({**IMAGE, "timeout": 0.01}))


def test_details_fallback_text(gemini):
    gemini.responses = [text_response(None)]
    details = asyncio.run(fetch_landmark_details.ainvoke({"landmark_name": "Big Ben"}))
    assert details == {"text": "No details found.", "sources": []}


def test_details_prompt_and_search_tool(gemini):
    gemini.responses = [text_response("Finished in 1859.")]
    asyncio.run(fetch_landmark_details.ainvoke({"landmark_name": "Big Ben"}))

    call = gemini.calls[0]
    assert "2 fun facts about Big Ben" in call["contents"]
    assert "under 150 words" in call["contents"]
    assert call["config"].tools[0].google_search is not None


def test_details_filters_incomplete_sources_in_order(gemini):
    chunks = [
        web_chunk("https://b.co", "Second"),
        web_chunk("https://x.co", None),
        web_chunk("", "No uri"),
        web_chunk("https://a.co", "First"),
        web_chunk("https://b.co", "Second"),
    ]
    gemini.responses = [text_response("Text", chunks)]
    details = asyncio.run(fetch_landmark_details.ainvoke({"landmark_name": "Big Ben"}))

    assert [(s.uri, s.title) for s in details["sources"]] == [
        ("https://b.co", "Second"),
        ("https://a.co", "First"),
        ("https://b.co", "Second"),
    ]


def test_details_transport_failure(gemini):
    gemini.responses = [ConnectionError("reset by peer")]
    with pytest.raises(EnrichmentError, match="Failed to retrieve landmark details."):
        asyncio.run(fetch_landmark_details.ainvoke({"landmark_name": "Big Ben"}))


def test_narration_requests_audio_with_voice(gemini):
    gemini.responses = [audio_response()]
    audio = asyncio.run(generate_narration.ainvoke({"script": "Hello.", "voice": "Fenrir"}))

    assert base64.b64decode(audio.data) == PCM
    assert audio.mime_type.startswith("audio/L16")
    config = gemini.calls[0]["config"]
    assert config.response_modalities == ["AUDIO"]
    assert config.speech_config.voice_config.prebuilt_voice_config.voice_name == "Fenrir"


def test_narration_without_audio(gemini):
    gemini.responses = [text_response("no audio here")]
    with pytest.raises(NarrationError, match="No audio data generated."):
        asyncio.run(generate_narration.ainvoke({"script": "Hello."}))


def test_narration_call_failure(gemini):
    gemini.responses = [RuntimeError("503")]
    with pytest.raises(NarrationError, match="Failed to generate narration."):
        asyncio.run(generate_narration.ainvoke({"script": "Hello."}))
