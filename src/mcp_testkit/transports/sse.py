"""Server-Sent Events framing.

Turns an arbitrarily chunked byte stream into decoded event payloads. The
framer is incremental: feed it chunks as they arrive and it returns the
payloads of the events completed so far, keeping any partial event buffered.
"""

import codecs
import json
from typing import Any, List, Tuple

DATA_PREFIX = "data: "
EVENT_SEPARATOR = "\n\n"


def parse_sse_event(block: str) -> Tuple[bool, Any]:
    """Extract the payload of a single SSE event block.

    The first line starting with ``data: `` provides the payload, which is
    JSON-decoded when possible and returned as the raw string otherwise.

    Args:
        block: Event text without the trailing blank line

    Returns:
        ``(True, payload)`` or ``(False, None)`` when the event carries no
        data line
    """
    for line in block.split("\n"):
        if line.startswith(DATA_PREFIX):
            data = line[len(DATA_PREFIX):]
            try:
                return True, json.loads(data)
            except ValueError:
                return True, data
    return False, None


class SSEFramer:
    """Incremental SSE decoder.

    Multi-byte UTF-8 sequences split across chunks are reassembled, ``\\r\\n``
    line endings are normalised and events are split on blank lines.

    Example:
        >>> framer = SSEFramer()
        >>> framer.feed(b'data: {"a": 1}\\n\\nda')
        [{'a': 1}]
        >>> framer.feed(b'ta: {"a": 2}\\n\\n')
        [{'a': 2}]
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> List[Any]:
        """Consume a chunk and return the payloads of completed events."""
        self._buffer += self._decoder.decode(chunk)
        self._buffer = self._buffer.replace("\r\n", "\n")
        *complete, self._buffer = self._buffer.split(EVENT_SEPARATOR)
        return self._payloads(complete)

    def flush(self) -> List[Any]:
        """Process whatever is left at end of stream as a final event."""
        remainder = (self._buffer + self._decoder.decode(b"", final=True)).replace("\r\n", "\n")
        self._buffer = ""
        if not remainder.strip():
            return []
        return self._payloads([remainder])

    @staticmethod
    def _payloads(blocks: List[str]) -> List[Any]:
        payloads = []
        for block in blocks:
            found, payload = parse_sse_event(block)
            if found:
                payloads.append(payload)
        return payloads


__all__ = ["SSEFramer", "parse_sse_event"]
