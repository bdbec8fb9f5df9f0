"""Wire framing for the streaming speech synthesis protocol.

Outgoing control messages are text frames: CRLF-separated ``Key:Value``
headers, a blank line and a body. Incoming audio arrives as binary frames::

    +----------------+------------------------+---------------+
    | header length  | header block (text)    | audio payload |
    | 2 bytes, BE    | ``header length`` bytes| rest of frame |
    +----------------+------------------------+---------------+

The end of an utterance is signalled by a text frame whose path is
``turn.end``.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from email.utils import formatdate
from typing import Dict, List, Optional, Tuple
from xml.sax.saxutils import escape

HEADER_LENGTH_PREFIX = 2
TURN_END_MARKER = "turn.end"
AUDIO_OUTPUT_FORMAT = "audio-24khz-48kbitrate-mono-mp3"
DEFAULT_CHUNK_THRESHOLD = 64 * 1024

VOICES: Tuple[Tuple[str, str], ...] = (
    ("Adrian", "en-US-AndrewMultilingualNeural"),
    ("Serena", "en-US-AvaMultilingualNeural"),
    ("Julian", "en-US-BrianMultilingualNeural"),
    ("Sophie", "en-US-EmmaMultilingualNeural"),
    ("Max", "en-US-GuyNeural"),
    ("Luna", "en-US-AriaNeural"),
    ("Alice", "en-GB-SoniaNeural"),
    ("Charlie", "en-GB-RyanNeural"),
)

_XML_ATTR_ENTITIES = {'"': "&quot;", "'": "&apos;"}


def build_text_message(path: str, content_type: str, body: str) -> str:
    timestamp = formatdate(usegmt=True)
    request_id = uuid.uuid4().hex
    return (
        f"X-Timestamp:{timestamp}\r\n"
        f"Content-Type:{content_type}\r\n"
        f"X-RequestId:{request_id}\r\n"
        f"Path:{path}\r\n\r\n"
        f"{body}"
    )


def speech_config_message() -> str:
    """Handshake selecting mp3 output with word and sentence boundaries off."""
    config = {
        "context": {
            "synthesis": {
                "audio": {
                    "metadataoptions": {
                        "sentenceBoundaryEnabled": "false",
                        "wordBoundaryEnabled": "false",
                    },
                    "outputFormat": AUDIO_OUTPUT_FORMAT,
                }
            }
        }
    }
    return build_text_message(
        "speech.config",
        "application/json; charset=utf-8",
        json.dumps(config, separators=(",", ":")),
    )


def ssml_message(text: str, voice: str) -> str:
    ssml = (
        "<speak version='1.0' xmlns='http://www.w3.org/2001/10/synthesis' xml:lang='en-US'>"
        f"<voice name='{voice}'>"
        "<prosody pitch='+0Hz' rate='+0%' volume='+0%'>"
        f"{escape(text, _XML_ATTR_ENTITIES)}"
        "</prosody></voice></speak>"
    )
    return build_text_message("ssml", "application/ssml+xml", ssml)


@dataclass
class AudioFrame:
    headers: Dict[str, str] = field(default_factory=dict)
    payload: bytes = b""


def _parse_headers(block: str) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for line in block.split("\r\n"):
        key, sep, value = line.partition(":")
        if sep and key:
            headers[key.strip()] = value.strip()
    return headers


def parse_audio_frame(data: bytes) -> Optional[AudioFrame]:
    """Split a binary frame into headers and audio.

    Returns None for frames too short to hold a header length or frames
    that carry no audio after their header block.
    """
    if len(data) <= HEADER_LENGTH_PREFIX:
        return None
    header_length = int.from_bytes(data[:HEADER_LENGTH_PREFIX], "big")
    payload_start = HEADER_LENGTH_PREFIX + header_length
    if len(data) <= payload_start:
        return None
    header_block = data[HEADER_LENGTH_PREFIX:payload_start].decode("utf-8", errors="replace")
    return AudioFrame(headers=_parse_headers(header_block), payload=data[payload_start:])


def is_turn_end(message: str) -> bool:
    return TURN_END_MARKER in message


class AudioChunkBuffer:
    """Accumulates audio payloads and releases them in playable chunks."""

    def __init__(self, threshold: int = DEFAULT_CHUNK_THRESHOLD) -> None:
        if threshold <= 0:
            raise ValueError("threshold must be positive")
        self.threshold = threshold
        self._parts: List[bytes] = []
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def append(self, payload: bytes) -> Optional[bytes]:
        """Add audio; returns a chunk once at least ``threshold`` bytes are held."""
        if payload:
            self._parts.append(payload)
            self._size += len(payload)
        if self._size >= self.threshold:
            return self.flush()
        return None

    def flush(self) -> Optional[bytes]:
        """Release whatever is buffered, or None if empty."""
        if not self._size:
            return None
        chunk = b"".join(self._parts)
        self.clear()
        return chunk

    def clear(self) -> None:
        self._parts.clear()
        self._size = 0
