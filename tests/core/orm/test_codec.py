"""Tests for value conversion between declared types and storage scalars."""

from __future__ import annotations

import datetime as dt
import pickle

import pytest

from strata.core.errors import TypeCodecError
from strata.core.orm.codec import (
    TypeCodec,
    ValueKind,
    classify,
    coerce,
    dehydrate_datetime,
    hydrate_datetime,
)
from strata.core.orm.metadata import describe_record
from strata.core.orm.types import StorageType, Text

from _support.models import Author, Sample


class TestClassify:
    @pytest.mark.parametrize(
        ("declared", "kind", "storage"),
        [
            (bool, ValueKind.SCALAR, StorageType.BOOL),
            (int, ValueKind.SCALAR, StorageType.INT),
            (str, ValueKind.SCALAR, StorageType.STRING),
            (Text, ValueKind.SCALAR, StorageType.TEXT),
            (bytes, ValueKind.SCALAR, StorageType.BLOB),
            (dt.datetime, ValueKind.DATETIME, StorageType.DATETIME),
            (Author, ValueKind.ENTITY, StorageType.INT),
            (dict, ValueKind.COMPLEX, StorageType.BLOB),
            (list[int], ValueKind.COMPLEX, StorageType.BLOB),
        ],
    )
    def test_classify(self, declared, kind, storage):
        assert classify(declared) == (kind, storage)


class TestCoerce:
    @pytest.mark.parametrize(
        ("storage", "value", "expected"),
        [
            (StorageType.BOOL, "yes", True),
            (StorageType.BOOL, "0", False),
            (StorageType.BOOL, 2, True),
            (StorageType.INT, "42", 42),
            (StorageType.INT, "5.0", 5),
            (StorageType.INT, 7.0, 7),
            (StorageType.INT, True, 1),
            (StorageType.FLOAT, "1.5", 1.5),
            (StorageType.FLOAT, 3, 3.0),
            (StorageType.STRING, 12, "12"),
            (StorageType.STRING, b"abc", "abc"),
            (StorageType.BLOB, "abc", b"abc"),
            (StorageType.DATETIME, dt.datetime(2024, 1, 2, 3, 4, 5), "2024-01-02 03:04:05"),
        ],
    )
    def test_exact_conversions(self, storage, value, expected):
        assert coerce(storage, value) == expected

    def test_none_passes_through(self):
        for storage in StorageType:
            assert coerce(storage, None) is None

    @pytest.mark.parametrize(
        ("storage", "value"),
        [
            (StorageType.INT, "abc"),
            (StorageType.INT, 3.7),
            (StorageType.INT, "3.7"),
            (StorageType.BOOL, "maybe"),
            (StorageType.FLOAT, object()),
            (StorageType.STRING, [1, 2]),
            (StorageType.BLOB, 5),
        ],
    )
    def test_inexact_values_fail(self, storage, value):
        with pytest.raises(TypeCodecError):
            coerce(storage, value)

    def test_short_string_limit(self):
        assert coerce(StorageType.STRING, "x" * 255) == "x" * 255
        with pytest.raises(TypeCodecError, match="exceeds 255"):
            coerce(StorageType.STRING, "x" * 256)
        assert coerce(StorageType.STRING, "x" * 300, strict=False) == "x" * 300

    def test_text_limit_counts_bytes(self):
        with pytest.raises(TypeCodecError):
            coerce(StorageType.TEXT, "é" * 40000)


class TestDatetime:
    def test_aware_values_convert_to_utc(self):
        tz = dt.timezone(dt.timedelta(hours=2))
        assert dehydrate_datetime(dt.datetime(2024, 1, 1, 12, 0, tzinfo=tz)) == "2024-01-01 10:00:00"

    def test_naive_values_are_utc(self):
        assert dehydrate_datetime(dt.datetime(2024, 1, 1, 12, 0)) == "2024-01-01 12:00:00"

    def test_hydrate_is_aware_utc(self):
        value = hydrate_datetime("2024-01-01 10:00:00")
        assert value == dt.datetime(2024, 1, 1, 10, tzinfo=dt.timezone.utc)
        assert value.tzinfo is dt.timezone.utc

    def test_hydrate_subclass(self):
        class Stamp(dt.datetime):
            pass

        value = hydrate_datetime("2024-01-01 10:00:00", Stamp)
        assert type(value) is Stamp

    @pytest.mark.parametrize(
        "value",
        [
            dt.datetime(2024, 1, 1, 12, 0, 5, tzinfo=dt.timezone.utc),
            dt.datetime(2024, 1, 1, 14, 0, 5, tzinfo=dt.timezone(dt.timedelta(hours=2))),
        ],
    )
    def test_aware_round_trip_is_equal(self, value):
        assert hydrate_datetime(dehydrate_datetime(value)) == value

    def test_naive_round_trip_is_the_same_utc_instant(self):
        value = dt.datetime(2020, 1, 2, 3, 4, 5)
        restored = hydrate_datetime(dehydrate_datetime(value))
        assert restored == value.replace(tzinfo=dt.timezone.utc)
        assert restored.replace(tzinfo=None) == value

    def test_sub_second_digits_are_dropped(self):
        value = dt.datetime(2024, 1, 1, 12, 0, 5, 999999, tzinfo=dt.timezone.utc)
        assert hydrate_datetime(dehydrate_datetime(value)) == value.replace(microsecond=0)


class TestTypeCodec:
    @pytest.fixture
    def codec(self):
        return TypeCodec()

    @pytest.fixture
    def sample(self):
        return describe_record(Sample)

    def test_scalar_round_trip(self, codec, sample):
        assert codec.dehydrate(sample["flag"], True) is True
        assert codec.hydrate(sample["flag"], 1) is True
        assert codec.hydrate(sample["count"], "3") == 3
        assert codec.hydrate(sample["payload"], "raw") == b"raw"
        assert codec.hydrate(sample["label"], b"abc") == "abc"

    def test_datetime_column(self, codec, sample):
        stored = codec.dehydrate(sample["created"], dt.datetime(2024, 5, 6, 7, 8, 9))
        assert stored == "2024-05-06 07:08:09"
        assert codec.hydrate(sample["created"], stored).tzinfo is dt.timezone.utc

    def test_invalid_stored_datetime(self, codec, sample):
        with pytest.raises(TypeCodecError, match="Invalid stored datetime"):
            codec.hydrate(sample["created"], "yesterday")

    def test_complex_values_are_pickled(self, codec, sample):
        stored = codec.dehydrate(sample["meta"], {"k": [1, 2]})
        assert isinstance(stored, bytes)
        assert codec.hydrate(sample["meta"], stored) == {"k": [1, 2]}

    def test_bare_scalar_in_structure_column_rejected(self, codec, sample):
        with pytest.raises(TypeCodecError, match="bare int"):
            codec.hydrate(sample["meta"], pickle.dumps(5))

    def test_wrong_structure_type_rejected(self, codec, sample):
        with pytest.raises(TypeCodecError, match="Expected dict"):
            codec.hydrate(sample["meta"], pickle.dumps([1, 2]))

    def test_garbage_blob_rejected(self, codec, sample):
        with pytest.raises(TypeCodecError, match="not a valid serialized"):
            codec.hydrate(sample["meta"], b"\x00garbage")

    def test_unpicklable_value(self, codec, sample):
        with pytest.raises(TypeCodecError, match="Cannot serialize"):
            codec.dehydrate(sample["meta"], {"f": lambda: None})

    def test_entity_reference(self, codec, sample):
        author = Author(name="Ursula")
        with pytest.raises(TypeCodecError, match="must be saved"):
            codec.dehydrate(sample["reviewer"], author)
        author.id = 9
        assert codec.dehydrate(sample["reviewer"], author) == 9
        assert codec.dehydrate(sample["reviewer"], 4) == 4

    def test_entity_reference_wrong_type(self, codec, sample):
        with pytest.raises(TypeCodecError, match="Expected Author"):
            codec.dehydrate(sample["reviewer"], Sample())
        with pytest.raises(TypeCodecError, match="Invalid Author id"):
            codec.dehydrate(sample["reviewer"], 0)

    def test_entity_hydration_needs_loader(self, codec, sample):
        with pytest.raises(TypeCodecError, match="need a database"):
            codec.hydrate(sample["reviewer"], 1)

    def test_errors_carry_column_context(self, codec, sample):
        with pytest.raises(TypeCodecError) as excinfo:
            codec.dehydrate(sample["count"], "many")
        assert excinfo.value.context.column == "count"
        assert excinfo.value.context.entity == "Sample"
