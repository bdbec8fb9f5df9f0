"""Streaming text-to-speech over a binary-framed websocket.

One connection is opened per utterance. The client sends the
``speech.config`` handshake and an SSML speak command, then accumulates
audio from binary frames and hands it to the player in chunks.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from chatbridge.core.config import DEFAULT_TTS_ENDPOINT, DEFAULT_TTS_VOICE
from chatbridge.tts.framing import (
    DEFAULT_CHUNK_THRESHOLD,
    AudioChunkBuffer,
    is_turn_end,
    parse_audio_frame,
    speech_config_message,
    ssml_message,
)
from chatbridge.tts.player import AudioPlayer
from chatbridge.utils.log import get_logger

logger = get_logger()


class PlaybackState(str, Enum):
    STOPPED = "stopped"
    BUFFERING = "buffering"
    PLAYING = "playing"
    PAUSED = "paused"


class SpeechConnection(Protocol):
    async def send(self, message: str) -> None:
        ...

    async def recv(self) -> Union[str, bytes]:
        ...

    async def close(self) -> None:
        ...


ConnectionFactory = Callable[[str], Awaitable[SpeechConnection]]
StateListener = Callable[[PlaybackState], None]


async def _default_connect(url: str) -> SpeechConnection:
    return await websockets.connect(url, max_size=None)


class StreamingTTSClient:
    """Speaks text through an ``AudioPlayer`` while tracking playback state.

    ``play`` returns once the utterance has fully arrived (or failed). Run it
    as a task to call ``pause_resume``, ``seek`` or ``stop`` meanwhile.
    """

    def __init__(
        self,
        player: AudioPlayer,
        *,
        endpoint: str = DEFAULT_TTS_ENDPOINT,
        voice: str = DEFAULT_TTS_VOICE,
        chunk_threshold: int = DEFAULT_CHUNK_THRESHOLD,
        connect: Optional[ConnectionFactory] = None,
    ) -> None:
        self.player = player
        self.endpoint = endpoint
        self.voice = voice
        self.error_message: Optional[str] = None
        self._buffer = AudioChunkBuffer(chunk_threshold)
        self._connect = connect or _default_connect
        self._connection: Optional[SpeechConnection] = None
        self._state = PlaybackState.STOPPED
        self._listeners: List[StateListener] = []
        # Bumped by stop() so a superseded receive loop exits quietly.
        self._generation = 0

    @property
    def state(self) -> PlaybackState:
        return self._state

    def add_state_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def _set_state(self, state: PlaybackState) -> None:
        if state == self._state:
            return
        self._state = state
        logger.debug("[tts] State changed", extra={"state": state.value})
        for listener in list(self._listeners):
            listener(state)

    async def play(self, text: str) -> None:
        await self.stop()
        if not text.strip():
            return

        generation = self._generation
        self.error_message = None
        self._set_state(PlaybackState.BUFFERING)
        logger.debug("[tts] Starting synthesis", extra={"voice": self.voice, "chars": len(text)})

        try:
            connection = await self._connect(self.endpoint)
            if generation != self._generation:
                # stop() ran while connecting; nothing owns this connection.
                await self._close(connection)
                return
            self._connection = connection
            await connection.send(speech_config_message())
            await connection.send(ssml_message(text, self.voice))
            await self._receive(connection, generation)
        except ConnectionClosed as exc:
            self._fail(generation, "Connection interrupted", exc)
        except (WebSocketException, OSError) as exc:
            self._fail(generation, f"Network Error: {exc}", exc)
        finally:
            if generation == self._generation:
                await self._close_connection()

    async def _receive(self, connection: SpeechConnection, generation: int) -> None:
        while generation == self._generation:
            message: Any = await connection.recv()
            if isinstance(message, str):
                if is_turn_end(message):
                    self._deliver(self._buffer.flush())
                    if not self.player.has_items:
                        self._set_state(PlaybackState.STOPPED)
                    logger.debug("[tts] Turn ended")
                    return
                continue
            frame = parse_audio_frame(bytes(message))
            if frame is not None:
                self._deliver(self._buffer.append(frame.payload))

    def _deliver(self, chunk: Optional[bytes]) -> None:
        if not chunk:
            return
        self.player.enqueue(chunk)
        if self._state == PlaybackState.BUFFERING:
            self.player.play()
            self._set_state(PlaybackState.PLAYING)

    def _fail(self, generation: int, message: str, exc: Exception) -> None:
        if generation != self._generation:
            return
        self.error_message = message
        logger.warning(
            "[tts] Synthesis failed: %s: %s",
            type(exc).__name__,
            exc,
            extra={"endpoint": self.endpoint.split("?", 1)[0]},
        )
        if not self.player.has_items:
            self._set_state(PlaybackState.STOPPED)

    def pause_resume(self) -> None:
        if self.player.is_playing:
            self.player.pause()
            self._set_state(PlaybackState.PAUSED)
        elif self.player.has_items:
            self.player.play()
            self._set_state(PlaybackState.PLAYING)

    def seek(self, seconds: float) -> None:
        if not self.player.has_items:
            return
        self.player.seek(seconds)

    async def stop(self) -> None:
        self._generation += 1
        await self._close_connection()
        self.player.stop()
        self._buffer.clear()
        self._set_state(PlaybackState.STOPPED)

    async def _close_connection(self) -> None:
        connection, self._connection = self._connection, None
        if connection is not None:
            await self._close(connection)

    async def _close(self, connection: SpeechConnection) -> None:
        try:
            await connection.close()
        except (WebSocketException, OSError) as exc:
            logger.debug(
                "[tts] Error closing connection: %s: %s",
                type(exc).__name__,
                exc,
            )


__all__ = ["PlaybackState", "SpeechConnection", "StreamingTTSClient"]
