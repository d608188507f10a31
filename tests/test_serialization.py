"""Tests for the serialization pipeline."""

import base64
from datetime import date, datetime, timezone
from itertools import product

import pytest

from tierstore.exceptions import DecryptionError, SerializationError
from tierstore.serialization import (
    KIND_TAG,
    SerializationPipeline,
    ValueKind,
    hydrate,
    normalize,
)

VALUES = {
    "primitive": 42,
    "string": "héllo",
    "none": None,
    "nested": {"user": {"name": "Ada", "tags": ["x", "y"], "score": 1.5, "ok": True}},
    "list": [1, "two", 3.0, None, [4, 5]],
    "map": {1: "one", (2, 3): "pair", "s": "str"},
    "set": {1, 2, 3},
    "frozenset": frozenset({"a", "b"}),
    "tuple": (1, "a", (2, 3)),
    "datetime": datetime(2024, 5, 17, 12, 30, 45, 123456, tzinfo=timezone.utc),
    "naive_datetime": datetime(2024, 5, 17, 12, 30),
    "date": date(2024, 5, 17),
    "binary": b"\x00\x01\xffdata",
    "mixed": {"when": date(2020, 1, 1), "blobs": [b"a", b"b"], "ids": {7, 8}},
    "tag_lookalike": {KIND_TAG: "set", "payload": [1]},
}

STRATEGIES = list(product(["json", "msgpack"], ["none", "zlib"]))


class XorCipher:
    """Toy reversible transform standing in for real encryption."""

    def __init__(self, key: int = 0x5A):
        self.key = key

    def encrypt(self, data: bytes) -> bytes:
        return bytes(b ^ self.key for b in data)

    def decrypt(self, data: bytes) -> bytes:
        return bytes(b ^ self.key for b in data)


class AsyncCipher(XorCipher):
    async def encrypt(self, data: bytes) -> bytes:
        return super().encrypt(data)

    async def decrypt(self, data: bytes) -> bytes:
        return super().decrypt(data)


class BrokenCipher(XorCipher):
    def decrypt(self, data: bytes) -> bytes:
        raise ValueError("bad key")


class TestNormalize:
    """Test tagging of non-JSON-native values."""

    def test_json_native_values_untouched(self):
        value = {"a": [1, 2.5, "x", None, True]}
        assert normalize(value) == value

    def test_set_is_tagged(self):
        assert normalize({1}) == {KIND_TAG: "set", "payload": [1]}

    def test_bytes_are_base64(self):
        tagged = normalize(b"hi")
        assert tagged[KIND_TAG] == ValueKind.BYTES.value
        assert base64.b64decode(tagged["payload"]) == b"hi"

    def test_datetime_before_date(self):
        """datetime is a date subclass but keeps its time part."""
        assert normalize(datetime(2024, 1, 1, 8))[KIND_TAG] == "datetime"
        assert normalize(date(2024, 1, 1))[KIND_TAG] == "date"

    def test_non_string_keys_become_map(self):
        tagged = normalize({1: "a"})
        assert tagged == {KIND_TAG: "map", "payload": [[1, "a"]]}

    def test_dict_containing_tag_key_is_wrapped(self):
        """A plain dict that looks like a tag must not be hydrated as one."""
        original = {KIND_TAG: "bytes", "payload": "not base64!"}
        assert hydrate(normalize(original)) == original

    def test_unsupported_type(self):
        with pytest.raises(SerializationError, match="object"):
            normalize(object())


class TestHydrate:
    """Test decoding of tagged values."""

    def test_unknown_kind(self):
        with pytest.raises(SerializationError, match="Unknown value kind"):
            hydrate({KIND_TAG: "regex", "payload": "a+"})

    def test_malformed_tag(self):
        with pytest.raises(SerializationError, match="Malformed"):
            hydrate({KIND_TAG: "set", "payload": [], "extra": 1})

    def test_corrupted_payload(self):
        with pytest.raises(SerializationError, match="Corrupted date"):
            hydrate({KIND_TAG: "date", "payload": "not-a-date"})

    def test_unhashable_map_key(self):
        with pytest.raises(SerializationError):
            hydrate({KIND_TAG: "map", "payload": [[[1, 2], "list key"]]})


class TestPipelineRoundTrip:
    """read(write(v)) == v for every value category and strategy combination."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("serialization,compression", STRATEGIES)
    @pytest.mark.parametrize("name", sorted(VALUES))
    async def test_round_trip(self, name, serialization, compression):
        pipeline = SerializationPipeline(serialization, compression)
        value = VALUES[name]

        decoded = await pipeline.decode(await pipeline.encode(value))

        assert decoded == value
        assert type(decoded) is type(value)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("cipher", [XorCipher(), AsyncCipher()])
    async def test_round_trip_encrypted(self, cipher):
        pipeline = SerializationPipeline("msgpack", "zlib", encryption=cipher)
        value = VALUES["mixed"]

        payload = await pipeline.encode(value)

        assert payload != pipeline.pack(value)
        assert await pipeline.decode(payload) == value


class TestPipelineConfiguration:
    """Test strategy selection and failure classification."""

    def test_unknown_serialization(self):
        with pytest.raises(SerializationError, match="Unknown serialization strategy"):
            SerializationPipeline("yaml", "none")

    def test_unknown_compression(self):
        with pytest.raises(SerializationError, match="Unknown compression strategy"):
            SerializationPipeline("json", "brotli")

    def test_aliases(self):
        pipeline = SerializationPipeline("binary", "text-compress")
        assert pipeline.describe() == {
            "serialization": "msgpack",
            "compression": "zlib",
            "encrypted": False,
        }

    def test_compression_shrinks_repetitive_data(self):
        value = {"text": "abc" * 1000}
        plain = SerializationPipeline("json", "none").pack(value)
        packed = SerializationPipeline("json", "zlib").pack(value)
        assert len(packed) < len(plain)

    @pytest.mark.asyncio
    async def test_corrupt_payload_is_serialization_error(self):
        pipeline = SerializationPipeline("json", "zlib")
        with pytest.raises(SerializationError):
            await pipeline.decode(b"definitely not zlib")

    @pytest.mark.asyncio
    async def test_malformed_json_is_serialization_error(self):
        pipeline = SerializationPipeline("json", "none")
        with pytest.raises(SerializationError):
            await pipeline.decode(b"{not json")

    @pytest.mark.asyncio
    async def test_decrypt_failure_is_distinct(self):
        """A failed decrypt is a DecryptionError, never a parse error."""
        writer = SerializationPipeline("json", "none", encryption=XorCipher())
        reader = SerializationPipeline("json", "none", encryption=BrokenCipher())
        payload = await writer.encode({"a": 1})

        with pytest.raises(DecryptionError) as exc_info:
            await reader.decode(payload)

        assert not isinstance(exc_info.value, SerializationError)
        assert exc_info.value.code == "DECRYPTION_ERROR"

    @pytest.mark.asyncio
    async def test_mismatched_strategies_do_not_round_trip(self):
        """Decoding with the wrong pipeline fails loudly instead of guessing."""
        payload = await SerializationPipeline("json", "zlib").encode({"a": 1})
        with pytest.raises(SerializationError):
            await SerializationPipeline("json", "none").decode(payload)
