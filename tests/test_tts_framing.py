"""Tests for the speech protocol framing helpers."""

import json
import re

import pytest

from chatbridge.tts.framing import (
    AudioChunkBuffer,
    build_text_message,
    is_turn_end,
    parse_audio_frame,
    speech_config_message,
    ssml_message,
)


def audio_frame(payload: bytes, header: str = "Path:audio\r\nContent-Type:audio/mpeg\r\n") -> bytes:
    encoded = header.encode("utf-8")
    return len(encoded).to_bytes(2, "big") + encoded + payload


def _split(message: str):
    head, _, body = message.partition("\r\n\r\n")
    headers = dict(line.split(":", 1) for line in head.split("\r\n"))
    return headers, body


def test_build_text_message_headers():
    headers, body = _split(build_text_message("ssml", "application/ssml+xml", "<speak/>"))

    assert list(headers) == ["X-Timestamp", "Content-Type", "X-RequestId", "Path"]
    assert headers["Content-Type"] == "application/ssml+xml"
    assert headers["Path"] == "ssml"
    assert re.fullmatch(r"[0-9a-f]{32}", headers["X-RequestId"])
    assert headers["X-Timestamp"].endswith("GMT")
    assert body == "<speak/>"


def test_request_ids_are_unique():
    first, _ = _split(build_text_message("ssml", "t", ""))
    second, _ = _split(build_text_message("ssml", "t", ""))
    assert first["X-RequestId"] != second["X-RequestId"]


def test_speech_config_message():
    headers, body = _split(speech_config_message())
    assert headers["Path"] == "speech.config"
    assert headers["Content-Type"] == "application/json; charset=utf-8"
    audio = json.loads(body)["context"]["synthesis"]["audio"]
    assert audio["outputFormat"] == "audio-24khz-48kbitrate-mono-mp3"
    assert audio["metadataoptions"] == {
        "sentenceBoundaryEnabled": "false",
        "wordBoundaryEnabled": "false",
    }


def test_ssml_message_escapes_text():
    headers, body = _split(ssml_message("Tom & Jerry <say> \"hi\" it's", "en-GB-SoniaNeural"))

    assert headers["Path"] == "ssml"
    assert "<voice name='en-GB-SoniaNeural'>" in body
    assert "<prosody pitch='+0Hz' rate='+0%' volume='+0%'>" in body
    assert "Tom &amp; Jerry &lt;say&gt; &quot;hi&quot; it&apos;s" in body
    assert body.startswith("<speak version='1.0'")
    assert body.endswith("</prosody></voice></speak>")


def test_parse_audio_frame():
    frame = parse_audio_frame(audio_frame(b"\x01\x02\x03"))
    assert frame is not None
    assert frame.headers == {"Path": "audio", "Content-Type": "audio/mpeg"}
    assert frame.payload == b"\x01\x02\x03"


@pytest.mark.parametrize("data", [b"", b"\x00", b"\x00\x05", audio_frame(b"")])
def test_parse_audio_frame_ignores_frames_without_audio(data):
    assert parse_audio_frame(data) is None


def test_parse_audio_frame_with_long_header():
    header = "Path:audio\r\n" + "X-Pad:" + "p" * 300 + "\r\n"
    frame = parse_audio_frame(audio_frame(b"mp3", header))
    assert frame.payload == b"mp3"
    assert len(frame.headers["X-Pad"]) == 300


def test_is_turn_end():
    assert is_turn_end("X-RequestId:abc\r\nPath:turn.end\r\n\r\n{}")
    assert not is_turn_end("X-RequestId:abc\r\nPath:turn.start\r\n\r\n{}")


def test_chunk_buffer_releases_at_threshold():
    buffer = AudioChunkBuffer(threshold=4)
    assert buffer.append(b"ab") is None
    assert len(buffer) == 2
    assert buffer.append(b"cde") == b"abcde"
    assert len(buffer) == 0
    assert buffer.append(b"f") is None
    assert buffer.flush() == b"f"
    assert buffer.flush() is None


def test_chunk_buffer_rejects_bad_threshold():
    with pytest.raises(ValueError):
        AudioChunkBuffer(threshold=0)
