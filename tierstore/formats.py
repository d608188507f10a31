"""Export/import formats for the decoded data set.

All formats carry the same content: values are normalized before writing and
hydrated after reading, so a set exported as JSON comes back as a set.
"""

import json
from typing import Any

import msgspec

from tierstore.exceptions import SerializationError
from tierstore.serialization import hydrate, normalize

FORMATS = ("json", "ndjson", "msgpack")


def dump_data(data: dict[str, Any], fmt: str = "json") -> str | bytes:
    """Render a decoded mapping in one of the export formats."""
    normalized = {key: normalize(value) for key, value in data.items()}
    if fmt == "json":
        return json.dumps(normalized, indent=2, ensure_ascii=False)
    elif fmt == "ndjson":
        return "\n".join(
            json.dumps({"key": key, "value": value}, ensure_ascii=False)
            for key, value in normalized.items()
        )
    elif fmt == "msgpack":
        return msgspec.msgpack.encode(normalized)
    raise SerializationError(f"Unknown export format: {fmt}")


def load_data(raw: str | bytes, fmt: str = "json") -> dict[str, Any]:
    """Parse an export back into a decoded mapping."""
    try:
        if fmt == "json":
            parsed = json.loads(raw)
        elif fmt == "ndjson":
            text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
            parsed = {}
            for line in text.splitlines():
                if line.strip():
                    record = json.loads(line)
                    parsed[record["key"]] = record["value"]
        elif fmt == "msgpack":
            parsed = msgspec.msgpack.decode(raw)
        else:
            raise SerializationError(f"Unknown import format: {fmt}")
    except (json.JSONDecodeError, UnicodeDecodeError, KeyError, TypeError, msgspec.DecodeError) as e:
        raise SerializationError(f"Invalid {fmt} data: {e}") from e

    if not isinstance(parsed, dict):
        raise SerializationError(f"Expected a mapping of keys to values in {fmt} data")
    return {str(key): hydrate(value) for key, value in parsed.items()}


def format_for_path(path: str, default: str = "json") -> str:
    """Guess the format from a file name suffix."""
    for fmt in FORMATS:
        if str(path).endswith(f".{fmt}"):
            return fmt
    if str(path).endswith(".jsonl"):
        return "ndjson"
    return default
