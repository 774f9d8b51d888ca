# common/net.py
import asyncio
import json
from typing import Dict, Any

# Newline-delimited JSON: one message object per line.

# Large enough for an existing-players reply in a busy room.
STREAM_LIMIT = 1 << 20


def encode_line(obj: Dict[str, Any]) -> bytes:
    return (json.dumps(obj, separators=(",", ":")) + "\n").encode("utf-8")


def decode_line(line: bytes) -> Dict[str, Any]:
    msg = json.loads(line.decode("utf-8"))
    if not isinstance(msg, dict):
        raise ValueError(f"expected a JSON object, got {type(msg).__name__}")
    return msg


async def send_json(writer: asyncio.StreamWriter, obj: Dict[str, Any]):
    writer.write(encode_line(obj))
    await writer.drain()


async def read_json(reader: asyncio.StreamReader) -> Dict[str, Any]:
    """Next message from the stream, or {} at EOF. Blank lines are skipped."""
    while True:
        line = await reader.readline()
        if not line:
            return {}
        if line.strip():
            return decode_line(line)
