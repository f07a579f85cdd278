"""
Media codec: images in, playable audio out.

Images are carried through the pipeline as base64 text so they can travel
inside tool arguments and JSON bodies. Narration audio comes back from the
provider as base64 too, in whatever container the provider chose; raw PCM
is wrapped into WAV so a browser `<audio>` element can play it.
"""

from __future__ import annotations

import base64
import binascii
import io
import threading
import wave
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, ConfigDict

from pipeline.errors import DecodingError, EncodingError

GENERIC_MIME_TYPES = ("", "application/octet-stream")

# Gemini TTS emits 16-bit little-endian mono PCM at 24 kHz.
DEFAULT_PCM_RATE = 24000
DEFAULT_PCM_CHANNELS = 1
PCM_SAMPLE_WIDTH = 2

PCM_MIME_TYPES = ("audio/l16", "audio/pcm", "audio/raw", "audio/x-raw")

# WAV header fields: channels is a uint16, frame rate and byte rate are uint32.
MAX_WAV_CHANNELS = 0xFFFF
MAX_WAV_BYTE_RATE = 0xFFFFFFFF

# Pillow's pixel limit is a module global; sniffing past it is serialized.
_unbounded_sniff = threading.Lock()


class ImagePayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: str
    mime_type: str

    def to_data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


class AudioPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: str
    mime_type: str = ""


@dataclass(frozen=True)
class PlayableAudio:
    """Self-contained audio clip with a container the browser understands."""

    data: bytes
    mime_type: str

    def to_data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


def _open_format(raw: bytes) -> Optional[str]:
    with Image.open(io.BytesIO(raw)) as img:
        return img.format


def sniff_image_mime(raw: bytes) -> Optional[str]:
    """
    Returns the MIME type Pillow reports for `raw`, or None if unreadable.

    Only the header is read, so images past Pillow's decompression-bomb
    limit are sniffed again with the limit lifted.
    """
    try:
        try:
            fmt = _open_format(raw)
        except Image.DecompressionBombError:
            with _unbounded_sniff:
                limit = Image.MAX_IMAGE_PIXELS
                Image.MAX_IMAGE_PIXELS = None
                try:
                    fmt = _open_format(raw)
                finally:
                    Image.MAX_IMAGE_PIXELS = limit
    except (UnidentifiedImageError, OSError):
        return None
    return Image.MIME.get(fmt) if fmt else None


def encode_image(raw: bytes, mime_type: Optional[str] = None) -> ImagePayload:
    """
    Encodes raw image bytes into a text-safe `ImagePayload`.

    The bytes are not re-compressed; decoding the payload yields exactly
    the input. A missing or generic MIME type is sniffed from the bytes.
    """
    if not raw:
        raise EncodingError("Cannot encode an empty image.")

    mime = (mime_type or "").strip().lower()
    if mime in GENERIC_MIME_TYPES:
        mime = sniff_image_mime(raw) or ""
        if not mime:
            raise EncodingError("Unsupported image format.")
    elif not mime.startswith("image/"):
        raise EncodingError(f"Expected an image, got '{mime}'.")

    return ImagePayload(
        data=base64.b64encode(raw).decode("ascii"),
        mime_type=mime,
    )


def decode_image(payload: ImagePayload) -> bytes:
    try:
        return base64.b64decode(payload.data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise EncodingError(f"Malformed image payload: {e}") from e


def _parse_mime(mime_type: str) -> Tuple[str, Dict[str, str]]:
    # "audio/L16;codec=pcm;rate=24000" -> ("audio/l16", {"codec": "pcm", "rate": "24000"})
    parts = [p.strip() for p in (mime_type or "").split(";") if p.strip()]
    if not parts:
        return "", {}
    params = {}
    for p in parts[1:]:
        key, _, value = p.partition("=")
        params[key.strip().lower()] = value.strip()
    return parts[0].lower(), params


def _container_mime(data: bytes) -> Optional[str]:
    if data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return "audio/wav"
    if data[:3] == b"ID3":
        return "audio/mpeg"
    if len(data) > 1 and data[0] == 0xFF and (data[1] & 0xE0) == 0xE0:
        return "audio/mpeg"
    if data[:4] == b"OggS":
        return "audio/ogg"
    if data[:4] == b"fLaC":
        return "audio/flac"
    return None


def _wrap_pcm(pcm: bytes, rate: int, channels: int) -> bytes:
    if len(pcm) % (PCM_SAMPLE_WIDTH * channels):
        raise DecodingError("Audio payload is not whole 16-bit PCM frames.")

    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(PCM_SAMPLE_WIDTH)
        wav.setframerate(rate)
        wav.writeframes(pcm)
    return buf.getvalue()


def decode_audio(payload: AudioPayload) -> PlayableAudio:
    """
    Turns a provider audio payload into a playable clip.

    Payloads that already carry a known container signature are passed
    through untouched. A declared non-PCM type is trusted as-is. Anything
    else is treated as raw PCM and wrapped into a WAV container, using the
    `rate` and `channels` parameters of the declared type when present.
    """
    if not payload.data:
        raise DecodingError("Audio payload is empty.")
    try:
        data = base64.b64decode(payload.data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodingError(f"Malformed audio payload: {e}") from e
    if not data:
        raise DecodingError("Audio payload is empty.")

    base, params = _parse_mime(payload.mime_type)
    container = _container_mime(data)
    if base in PCM_MIME_TYPES:
        # PCM samples can look like an MPEG frame sync; only a RIFF header counts.
        if container == "audio/wav":
            return PlayableAudio(data=data, mime_type=container)
    elif container:
        return PlayableAudio(data=data, mime_type=container)
    elif base.startswith("audio/"):
        return PlayableAudio(data=data, mime_type=base)

    try:
        rate = int(params.get("rate", DEFAULT_PCM_RATE))
        channels = int(params.get("channels", DEFAULT_PCM_CHANNELS))
    except ValueError as e:
        raise DecodingError(f"Bad PCM parameters in '{payload.mime_type}'.") from e
    if (
        rate <= 0
        or not 0 < channels <= MAX_WAV_CHANNELS
        or rate * channels * PCM_SAMPLE_WIDTH > MAX_WAV_BYTE_RATE
    ):
        raise DecodingError(f"Bad PCM parameters in '{payload.mime_type}'.")

    return PlayableAudio(data=_wrap_pcm(data, rate, channels), mime_type="audio/wav")
