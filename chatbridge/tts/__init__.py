"""Streaming text-to-speech client."""

from chatbridge.tts.client import PlaybackState, StreamingTTSClient
from chatbridge.tts.framing import VOICES, AudioChunkBuffer, parse_audio_frame
from chatbridge.tts.player import AudioPlayer, BufferedAudioPlayer

__all__ = [
    "VOICES",
    "AudioChunkBuffer",
    "AudioPlayer",
    "BufferedAudioPlayer",
    "PlaybackState",
    "StreamingTTSClient",
    "parse_audio_frame",
]
