"""Idle-gap framing of a raw serial byte stream."""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterator, Optional, Protocol

from ..errors import TransportIOError

logger = logging.getLogger(__name__)

DEFAULT_IDLE_THRESHOLD_S = 0.03
DEFAULT_IDLE_SLEEP_S = 0.005

FrameSink = Callable[[bytes], object]


class ChunkReader(Protocol):
    def read_chunk(self) -> bytes:  # pragma: no cover - protocol signature
        ...


class FrameAssembler:
    """Split the bytes read from *link* into frames separated by silence.

    Bytes accumulate until no new data has arrived for longer than
    ``idle_threshold_s``; the accumulated run is then emitted as one frame.
    There is no maximum frame size: a stream that never goes quiet grows a
    single frame until the assembler is stopped, which flushes it.
    """

    def __init__(
        self,
        link: ChunkReader,
        sink: Optional[FrameSink] = None,
        *,
        idle_threshold_s: float = DEFAULT_IDLE_THRESHOLD_S,
        idle_sleep_s: float = DEFAULT_IDLE_SLEEP_S,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._link = link
        self._sink = sink
        self._idle_threshold_s = max(idle_threshold_s, 0.0)
        self._idle_sleep_s = max(idle_sleep_s, 0.0)
        self._clock = clock
        self._sleep = sleep
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._error: Optional[TransportIOError] = None
        self._frames = 0

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    @property
    def error(self) -> Optional[TransportIOError]:
        """The read error that ended the loop, if it ended that way."""

        return self._error

    @property
    def frames_emitted(self) -> int:
        return self._frames

    def frames(self) -> Iterator[bytes]:
        """Yield frames until stopped or until the link fails."""

        buffer = bytearray()
        last_rx = self._clock()
        while not self._stop.is_set():
            try:
                chunk = self._link.read_chunk()
            except TransportIOError as exc:
                self._error = exc
                logger.warning("Serial reader stopped: %s", exc)
                break
            if chunk:
                buffer.extend(chunk)
                last_rx = self._clock()
                continue
            if buffer and self._clock() - last_rx > self._idle_threshold_s:
                frame = bytes(buffer)
                buffer.clear()
                self._frames += 1
                yield frame
                continue
            self._sleep(self._idle_sleep_s)
        if buffer:
            # residual data is flushed on both stop and failure
            self._frames += 1
            yield bytes(buffer)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        if self._sink is None:
            raise RuntimeError("FrameAssembler.start() requires a frame sink")
        self._stop.clear()
        self._error = None
        self._thread = threading.Thread(target=self._run, name="iotbox-frame-reader", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Request cancellation; the reader notices on its next iteration."""

        self._stop.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        if self._thread is None:
            return True
        self._thread.join(timeout=timeout)
        return not self._thread.is_alive()

    def _run(self) -> None:
        assert self._sink is not None
        for frame in self.frames():
            logger.debug("Frame of %d byte(s)", len(frame))
            self._sink(frame)


__all__ = ["DEFAULT_IDLE_THRESHOLD_S", "FrameAssembler"]
