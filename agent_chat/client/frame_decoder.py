"""
MODULE OVERVIEW:
Turns the raw, arbitrarily chunked body of an SSE response into discrete frame payloads.

WHAT IS HAPPENING HERE:
The network hands us bytes in whatever sizes TCP and the server's buffers felt like.
A chunk can end halfway through a line, halfway through the `data: ` prefix, or halfway
through a multi-byte UTF-8 character. We keep two pieces of state:

  1. an incremental UTF-8 decoder, which holds back the bytes of a split character
     until the rest of it arrives;
  2. a residual string holding the last, not yet newline-terminated, line.

Only complete lines that start with the literal `data: ` become frames. The agent server
never sends `event:` fields, so the JSON body alone tells event types apart, and that is
the event parser's job, not ours.
"""
import codecs

from loguru import logger

DATA_PREFIX = "data: "

class SSEFrameDecoder:
    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._residual = ""

    @property
    def residual(self) -> str:
        return self._residual

    def feed(self, chunk: bytes) -> list[str]:
        """Consume one chunk and return the payloads of every line it completed."""
        self._residual += self._decoder.decode(chunk)
        *lines, self._residual = self._residual.split("\n")

        frames = []
        for line in lines:
            if not line.startswith(DATA_PREFIX):
                continue
            payload = line[len(DATA_PREFIX):].strip()
            if payload:
                frames.append(payload)
        return frames

    def close(self) -> None:
        """
        End of input. A line that never got its newline is not a frame,
        so whatever is still buffered is thrown away.
        """
        self._residual += self._decoder.decode(b"", final=True)
        if self._residual:
            logger.debug(f"event=frame_discarded reason=unterminated length={len(self._residual)}")
        self._residual = ""
        self._decoder.reset()
