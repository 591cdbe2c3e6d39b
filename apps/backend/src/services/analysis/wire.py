"""Server-sent event framing for analysis chunks.

Two frame shapes exist:

    data: {<analysis fields>}\\n\\n
    event: error\\ndata: {"error": "<message>"}\\n\\n

A frame is only produced from a fully built chunk, so a consumer never sees
half a frame, only partial results inside whole frames.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from schemas.streaming import StreamChunk


MAX_SSE_EVENT_BYTES: int = 512 * 1024
FRAME_DELIMITER = "\n\n"
ERROR_EVENT = "error"


def _data_line(payload: dict[str, Any]) -> str:
    # json.dumps escapes newlines, so the payload always fits on one line
    encoded = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    if len(encoded.encode("utf-8")) > MAX_SSE_EVENT_BYTES:
        raise ValueError("SSE payload exceeded MAX_SSE_EVENT_BYTES")
    return f"data: {encoded}"


def encode_chunk(chunk: StreamChunk) -> str:
    """Render one chunk as one SSE frame.

    Raises:
        ValueError: For `metadata` chunks, which have no wire form, or for
            payloads above MAX_SSE_EVENT_BYTES.
    """
    if chunk.type in ("partial", "complete"):
        return _data_line(chunk.data or {}) + FRAME_DELIMITER
    if chunk.type == "error":
        message = chunk.error or "Analysis failed"
        return f"event: {ERROR_EVENT}\n" + _data_line({"error": message}) + FRAME_DELIMITER
    raise ValueError(f"{chunk.type} chunks are not framed on the wire")


@dataclass(frozen=True, slots=True)
class WireFrame:
    """One decoded SSE frame."""

    data: str
    event: str | None = None

    @property
    def is_error(self) -> bool:
        return self.event == ERROR_EVENT

    def payload(self) -> dict[str, Any]:
        """Decode the JSON payload.

        Raises:
            ValueError: The data is not a JSON object.
        """
        value = json.loads(self.data)
        if not isinstance(value, dict):
            raise ValueError("SSE frame payload is not a JSON object")
        return value


def decode_frames(buffer: str) -> tuple[list[WireFrame], str]:
    """Split received text into complete frames and the unfinished remainder.

    Comment lines (`:`) and unknown fields are ignored; blocks without data
    lines yield no frame.
    """
    buffer = buffer.replace("\r\n", "\n")
    *blocks, remainder = buffer.split(FRAME_DELIMITER)

    frames: list[WireFrame] = []
    for block in blocks:
        event: str | None = None
        data_lines: list[str] = []
        for line in block.split("\n"):
            if line.startswith("event:"):
                event = line[len("event:") :].strip()
            elif line.startswith("data:"):
                data_lines.append(line[len("data:") :].removeprefix(" "))
        if data_lines:
            frames.append(WireFrame(data="\n".join(data_lines), event=event))
    return frames, remainder
