"""Bounded response reader with busy-marker resync."""

import time
import logging
from dataclasses import dataclass

from .constants import PROMPT, BUSY_MARKER, TIMEOUT_LONG_MS

log = logging.getLogger(__name__)


@dataclass
class Response:
    """Bytes read for one command.

    complete is True only if the prompt arrived inside the time budget.
    """
    data: bytes = b""
    complete: bool = False

    @property
    def text(self):
        return self.data.decode("ascii", errors="replace")

    def __bool__(self):
        return bool(self.data)

    def __len__(self):
        return len(self.data)


def read_response(channel, max_bytes, timeout_ms=None, clock=time.monotonic):
    """Poll the channel until the "\\r>" prompt, timeout, or a full buffer.

    Args:
        channel: Channel to poll.
        max_bytes: Buffer capacity; never exceeded.
        timeout_ms: Budget in ms; defaults to the channel's configured
            read timeout.
        clock: Monotonic clock in seconds.

    When the adapter's "..." busy marker shows up, everything up to and
    including it is dropped and the budget grows by TIMEOUT_LONG_MS. Time
    already spent is not refunded.

    ChannelError from the channel propagates immediately.
    """
    if timeout_ms is None:
        timeout_ms = channel.read_timeout_ms
    budget = timeout_ms / 1000.0

    buf = bytearray()
    scan_from = 0
    start = clock()

    while True:
        if clock() - start > budget:
            log.debug("Read timed out after %d bytes", len(buf))
            return Response(bytes(buf), False)
        if len(buf) >= max_bytes:
            log.debug("Read buffer full (%d bytes)", max_bytes)
            return Response(bytes(buf), False)

        chunk = channel.read(max_bytes - len(buf))
        if not chunk:
            continue
        buf += chunk[:max_bytes - len(buf)]

        marker = buf.rfind(BUSY_MARKER)
        if marker >= 0:
            del buf[:marker + len(BUSY_MARKER)]
            budget += TIMEOUT_LONG_MS / 1000.0
            scan_from = 0
            log.debug("Adapter busy, budget extended to %.1fs", budget)

        if buf.find(PROMPT, scan_from) >= 0:
            return Response(bytes(buf), True)
        # The prompt may straddle two chunks
        scan_from = max(0, len(buf) - len(PROMPT) + 1)
