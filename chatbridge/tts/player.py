"""Queued audio playback."""

from __future__ import annotations

from typing import BinaryIO, List, Optional, Protocol


class AudioPlayer(Protocol):
    """Plays audio chunks in the order they are enqueued."""

    def enqueue(self, chunk: bytes) -> None:
        ...

    def play(self) -> None:
        ...

    def pause(self) -> None:
        ...

    def stop(self) -> None:
        """Halt playback and drop every queued chunk."""
        ...

    def seek(self, seconds: float) -> None:
        """Move the playhead relative to its current position."""
        ...

    @property
    def is_playing(self) -> bool:
        ...

    @property
    def has_items(self) -> bool:
        ...


class BufferedAudioPlayer:
    """In-memory queue player with an optional byte sink.

    Chunks written to ``sink`` form a concatenated mp3 stream, which is how
    the CLI saves synthesized speech to disk.
    """

    def __init__(self, sink: Optional[BinaryIO] = None) -> None:
        self.sink = sink
        self.chunks: List[bytes] = []
        self.position = 0.0
        self._playing = False

    def enqueue(self, chunk: bytes) -> None:
        self.chunks.append(chunk)
        if self.sink is not None:
            self.sink.write(chunk)

    def play(self) -> None:
        if self.chunks:
            self._playing = True

    def pause(self) -> None:
        self._playing = False

    def stop(self) -> None:
        self._playing = False
        self.chunks.clear()
        self.position = 0.0

    def seek(self, seconds: float) -> None:
        if not self.chunks:
            return
        self.position = max(0.0, self.position + seconds)

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def has_items(self) -> bool:
        return bool(self.chunks)

    @property
    def total_bytes(self) -> int:
        return sum(len(chunk) for chunk in self.chunks)
