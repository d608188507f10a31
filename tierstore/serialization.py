"""Serialization pipeline: normalize -> serialize -> compress -> encrypt.

Reads run the exact inverse: decrypt -> decompress -> deserialize -> hydrate.
The stages are order-sensitive; running them out of order does not fail, it
produces garbage, so the pipeline object owns the order and callers only see
``encode``/``decode``.

Values that JSON and msgpack cannot carry natively are tagged during
normalization as ``{"__kind__": <ValueKind>, "payload": ...}`` and untagged
during hydration by switching on the closed ``ValueKind`` enum.
"""

import base64
import inspect
import logging
import zlib
from collections.abc import Callable
from datetime import date, datetime
from enum import Enum
from typing import Any, Protocol

import msgspec

from tierstore.exceptions import DecryptionError, SerializationError

logger = logging.getLogger(__name__)

KIND_TAG = "__kind__"
PAYLOAD = "payload"


class ValueKind(str, Enum):
    """Tags for values the wire formats cannot represent directly."""

    MAP = "map"
    SET = "set"
    FROZENSET = "frozenset"
    TUPLE = "tuple"
    DATETIME = "datetime"
    DATE = "date"
    BYTES = "bytes"


class Encryptor(Protocol):
    """Optional opaque transform applied last on write and first on read.

    Either method may be a coroutine function.
    """

    def encrypt(self, data: bytes) -> bytes: ...

    def decrypt(self, data: bytes) -> bytes: ...


def _tag(kind: ValueKind, payload: Any) -> dict[str, Any]:
    return {KIND_TAG: kind.value, PAYLOAD: payload}


def normalize(value: Any) -> Any:
    """Convert a value into JSON-native structures, tagging everything else."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return _tag(ValueKind.BYTES, base64.b64encode(bytes(value)).decode("ascii"))
    # datetime subclasses date, so it must be checked first
    if isinstance(value, datetime):
        return _tag(ValueKind.DATETIME, value.isoformat())
    if isinstance(value, date):
        return _tag(ValueKind.DATE, value.isoformat())
    if isinstance(value, list):
        return [normalize(item) for item in value]
    if isinstance(value, tuple):
        return _tag(ValueKind.TUPLE, [normalize(item) for item in value])
    if isinstance(value, frozenset):
        return _tag(ValueKind.FROZENSET, [normalize(item) for item in value])
    if isinstance(value, set):
        return _tag(ValueKind.SET, [normalize(item) for item in value])
    if isinstance(value, dict):
        if KIND_TAG not in value and all(isinstance(k, str) for k in value):
            return {k: normalize(v) for k, v in value.items()}
        return _tag(
            ValueKind.MAP, [[normalize(k), normalize(v)] for k, v in value.items()]
        )
    raise SerializationError(f"Cannot serialize value of type {type(value).__name__}")


def hydrate(value: Any) -> Any:
    """Reverse of ``normalize``."""
    if isinstance(value, list):
        return [hydrate(item) for item in value]
    if not isinstance(value, dict):
        return value
    if KIND_TAG not in value:
        return {k: hydrate(v) for k, v in value.items()}

    if set(value) != {KIND_TAG, PAYLOAD}:
        raise SerializationError(f"Malformed tagged value: {sorted(value)}")
    try:
        kind = ValueKind(value[KIND_TAG])
    except ValueError:
        raise SerializationError(f"Unknown value kind: {value[KIND_TAG]!r}") from None
    payload = value[PAYLOAD]

    try:
        if kind == ValueKind.MAP:
            return {hydrate(k): hydrate(v) for k, v in payload}
        elif kind == ValueKind.SET:
            return {hydrate(item) for item in payload}
        elif kind == ValueKind.FROZENSET:
            return frozenset(hydrate(item) for item in payload)
        elif kind == ValueKind.TUPLE:
            return tuple(hydrate(item) for item in payload)
        elif kind == ValueKind.DATETIME:
            return datetime.fromisoformat(payload)
        elif kind == ValueKind.DATE:
            return date.fromisoformat(payload)
        else:
            return base64.b64decode(payload, validate=True)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Corrupted {kind.value} payload: {e}") from e


SERIALIZERS: dict[str, tuple[Callable[[Any], bytes], Callable[[bytes], Any]]] = {
    "json": (msgspec.json.encode, msgspec.json.decode),
    "msgpack": (msgspec.msgpack.encode, msgspec.msgpack.decode),
}

COMPRESSORS: dict[str, tuple[Callable[[bytes], bytes], Callable[[bytes], bytes]]] = {
    "none": (bytes, bytes),
    "zlib": (zlib.compress, zlib.decompress),
}

# Names used by the storage profiles of earlier releases
STRATEGY_ALIASES = {
    "text": "json",
    "binary": "msgpack",
    "text-compress": "zlib",
    "lz-string": "zlib",
}


async def _resolve(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


class SerializationPipeline:
    """Fixed-order codec between Python values and stored payloads."""

    def __init__(
        self,
        serialization: str = "json",
        compression: str = "none",
        encryption: Encryptor | None = None,
    ):
        self.serialization = STRATEGY_ALIASES.get(serialization, serialization)
        self.compression = STRATEGY_ALIASES.get(compression, compression)
        if self.serialization not in SERIALIZERS:
            raise SerializationError(f"Unknown serialization strategy: {serialization}")
        if self.compression not in COMPRESSORS:
            raise SerializationError(f"Unknown compression strategy: {compression}")

        self._serialize, self._deserialize = SERIALIZERS[self.serialization]
        self._compress, self._decompress = COMPRESSORS[self.compression]
        self.encryption = encryption

    def pack(self, value: Any) -> bytes:
        """Normalize, serialize and compress; everything but encryption."""
        normalized = normalize(value)
        try:
            serialized = self._serialize(normalized)
        except (TypeError, OverflowError, msgspec.EncodeError) as e:
            raise SerializationError(f"Failed to serialize value: {e}") from e
        return self._compress(serialized)

    def unpack(self, data: bytes) -> Any:
        """Decompress, deserialize and hydrate."""
        try:
            decompressed = self._decompress(data)
        except zlib.error as e:
            raise SerializationError(f"Failed to decompress payload: {e}") from e
        try:
            parsed = self._deserialize(decompressed)
        except msgspec.DecodeError as e:
            raise SerializationError(f"Failed to deserialize payload: {e}") from e
        return hydrate(parsed)

    async def encode(self, value: Any) -> bytes:
        """Run the full write pipeline."""
        data = self.pack(value)
        if self.encryption is not None:
            data = await _resolve(self.encryption.encrypt(data))
        return data

    async def decode(self, data: bytes) -> Any:
        """Run the full read pipeline."""
        if self.encryption is not None:
            try:
                data = await _resolve(self.encryption.decrypt(data))
            except Exception as e:
                raise DecryptionError(f"Failed to decrypt payload: {e}") from e
        return self.unpack(data)

    def describe(self) -> dict[str, Any]:
        """Strategy names, for diagnostics."""
        return {
            "serialization": self.serialization,
            "compression": self.compression,
            "encrypted": self.encryption is not None,
        }
