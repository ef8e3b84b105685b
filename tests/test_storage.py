"""
Tests for the storage layer: key namespace, codec and local backends.
"""

import asyncio
import os
import re
import threading

import pytest

from budgetkeep.models.records import NavigationMarker, TutorialStatus
from budgetkeep.services.storage.local_files import decode_file_name, encode_file_name
from budgetkeep.services.storage import (
    CommonKey,
    DecodingError,
    EncodingError,
    FileLocalBackend,
    InMemoryLocalBackend,
    IOFailure,
    JsonCodec,
    StorageDomain,
    build_key,
    keys_for_domain,
    keys_for_user,
    parse_key,
    setup_completed_key,
)


def run(coro):
    return asyncio.run(coro)


class TestKeyNamespace:
    """Tests for storage key derivation."""

    def test_build_key_format(self):
        """Test the <domain-prefix>_<user_id> format."""
        assert build_key(StorageDomain.TUTORIAL_STATUS, "abc") == "@budgetkeep:tutorial_status_abc"
        assert build_key(StorageDomain.SAVINGS_GOALS, "abc") == "savings_goals_abc"

    def test_build_key_is_deterministic(self):
        """Test that the same inputs always give the same key."""
        keys = {build_key(StorageDomain.NOTIFICATION_SETTINGS, "u1") for _ in range(10)}
        assert len(keys) == 1

    def test_build_key_is_injective(self):
        """Test that distinct (domain, user) pairs never collide."""
        users = ["u1", "u2", "a_b", "a", "b", "3f2b8c1e-9d4a-4b6e-8f21-7c5d3e9a1b04"]
        pairs = [(domain, user) for domain in StorageDomain for user in users]
        keys = [build_key(domain, user) for domain, user in pairs]
        assert len(set(keys)) == len(pairs)

    def test_parse_key_round_trip(self):
        """Test recovering the domain and user from a key."""
        key = build_key(StorageDomain.FINANCE_TRANSACTIONS, "user_with_underscores")
        assert parse_key(key) == (StorageDomain.FINANCE_TRANSACTIONS, "user_with_underscores")

    def test_parse_key_ignores_common_keys(self):
        """Test that device-wide keys are not user-scoped."""
        assert parse_key(CommonKey.NAVIGATION_STATE.value) is None
        assert parse_key("unrelated") is None

    def test_common_keys_are_prefixed(self):
        """Test that device-wide keys share the app prefix."""
        for key in CommonKey:
            assert key.value.startswith("@budgetkeep:")

    def test_keys_for_user(self):
        """Test filtering a listing to one user's keys."""
        keys = [
            build_key(StorageDomain.TUTORIAL_STATUS, "u1"),
            build_key(StorageDomain.NOTIFICATION_SETTINGS, "u1"),
            build_key(StorageDomain.NOTIFICATION_SETTINGS, "u2"),
            setup_completed_key("u1"),
            CommonKey.SESSION.value,
        ]
        owned = keys_for_user(keys, "u1")
        assert owned == [keys[0], keys[1], keys[3]]

    def test_keys_for_domain(self):
        """Test filtering a listing to one domain."""
        keys = [
            build_key(StorageDomain.FINANCE_BUDGET_GOALS, "u1"),
            build_key(StorageDomain.FINANCE_MILESTONES, "u1"),
        ]
        assert keys_for_domain(keys, StorageDomain.FINANCE_MILESTONES) == [keys[1]]


class TestJsonCodec:
    """Tests for the canonical JSON codec."""

    def test_encoding_is_canonical(self):
        """Test that key order does not change the encoding."""
        codec = JsonCodec()
        assert codec.encode({"b": 1, "a": 2}) == codec.encode({"a": 2, "b": 1})
        assert codec.encode({"a": [1, 2]}) == '{"a":[1,2]}'

    def test_encodes_models_by_alias(self):
        """Test that models use their wire names."""
        text = JsonCodec().encode(NavigationMarker(last_screen="budget", timestamp=7))
        assert text == '{"lastScreen":"budget","timestamp":7}'

    def test_decode_into_model(self):
        """Test decoding with schema validation."""
        codec = JsonCodec()
        status = TutorialStatus(user_id="guest", tutorial_completed=True)
        decoded = codec.decode(codec.encode(status), TutorialStatus)
        assert decoded == status

    def test_cyclic_value_raises_encoding_error(self):
        """Test that cycles surface as EncodingError."""
        value = []
        value.append(value)
        with pytest.raises(EncodingError):
            JsonCodec().encode(value)

    def test_unsupported_type_raises_encoding_error(self):
        """Test that non-JSON objects surface as EncodingError."""
        with pytest.raises(EncodingError):
            JsonCodec().encode({"when": object()})

    def test_nan_rejected(self):
        """Test that NaN is not written as invalid JSON."""
        with pytest.raises(EncodingError):
            JsonCodec().encode({"x": float("nan")})

    def test_malformed_text_raises_decoding_error(self):
        """Test that malformed JSON surfaces as DecodingError."""
        with pytest.raises(DecodingError):
            JsonCodec().decode("{not json")

    def test_schema_mismatch_raises_decoding_error(self):
        """Test that schema violations surface as DecodingError."""
        with pytest.raises(DecodingError):
            JsonCodec().decode('{"lastScreen": "x"}', NavigationMarker)


class TestFileLocalBackend:
    """Tests for the file-per-key local backend."""

    def test_set_get_remove(self, tmp_path):
        """Test basic key operations."""
        backend = FileLocalBackend(tmp_path / "store")

        async def scenario():
            assert await backend.get("missing") is None
            await backend.set("k1", "v1")
            assert await backend.get("k1") == "v1"
            await backend.set("k1", "v2")
            assert await backend.get("k1") == "v2"
            await backend.remove("k1")
            assert await backend.get("k1") is None

        run(scenario())

    def test_remove_missing_key_is_noop(self, tmp_path):
        """Test that removing an absent key does not fail."""
        run(FileLocalBackend(tmp_path).remove("nothing"))

    def test_keys_with_special_characters(self, tmp_path):
        """Test that prefixed keys survive the filename mapping."""
        backend = FileLocalBackend(tmp_path)
        key = CommonKey.NAVIGATION_STATE.value

        async def scenario():
            await backend.set(key, "{}")
            await backend.set("a/b", "slash")
            return await backend.list_keys()

        assert sorted(run(scenario())) == sorted([key, "a/b"])
        assert all(path.is_file() for path in tmp_path.iterdir())

    def test_no_temp_files_left_behind(self, tmp_path):
        """Test that atomic writes clean up their temp files."""
        backend = FileLocalBackend(tmp_path)
        run(backend.set("k", "v"))
        assert [p.name for p in tmp_path.iterdir()] == ["k.json"]

    def test_clear_removes_everything(self, tmp_path):
        """Test clearing the whole store."""
        backend = FileLocalBackend(tmp_path)

        async def scenario():
            await backend.multi_set([("a", "1"), ("b", "2")])
            await backend.clear()
            return await backend.list_keys()

        assert run(scenario()) == []

    def test_list_keys_of_missing_directory(self, tmp_path):
        """Test that a store that was never written is empty."""
        assert run(FileLocalBackend(tmp_path / "never").list_keys()) == []

    def test_write_failure_is_io_failure(self, tmp_path):
        """Test that OS errors surface as IOFailure."""
        blocker = tmp_path / "file"
        blocker.write_text("x")
        backend = FileLocalBackend(blocker / "sub")
        with pytest.raises(IOFailure):
            run(backend.set("k", "v"))

    def test_values_persist_across_instances(self, tmp_path):
        """Test durability across backend instances."""
        run(FileLocalBackend(tmp_path).set("k", "persisted"))
        assert run(FileLocalBackend(tmp_path).get("k")) == "persisted"

    def test_keys_differing_in_case_get_distinct_files(self, tmp_path):
        """Test that file names stay unique on case-insensitive filesystems."""
        backend = FileLocalBackend(tmp_path)
        upper = build_key(StorageDomain.TUTORIAL_STATUS, "Bob")
        lower = build_key(StorageDomain.TUTORIAL_STATUS, "bob")

        async def scenario():
            await backend.set(upper, "upper")
            await backend.set(lower, "lower")
            return await backend.get(upper), await backend.get(lower), await backend.list_keys()

        upper_value, lower_value, keys = run(scenario())
        names = [path.name for path in tmp_path.iterdir()]

        assert (upper_value, lower_value) == ("upper", "lower")
        assert sorted(keys) == sorted([upper, lower])
        assert len({name.casefold() for name in names}) == 2

    def test_file_names_round_trip(self):
        """Test the key to file name mapping."""
        for key in ["Bob", "a%41", "@budgetkeep:navigation_state", "ÄÖ", "x/y"]:
            name = encode_file_name(key)
            assert decode_file_name(name) == key
            assert not re.search(r"[A-Z]", re.sub(r"%[0-9A-F]{2}", "", name))

    def test_sync_happens_off_the_event_loop_thread(self, tmp_path, monkeypatch):
        """Test that the flush to disk does not block the loop thread."""
        threads = []
        real_fsync = os.fsync

        def recording_fsync(fd):
            threads.append(threading.get_ident())
            real_fsync(fd)

        monkeypatch.setattr(os, "fsync", recording_fsync)
        loop_thread = []

        async def scenario():
            loop_thread.append(threading.get_ident())
            await FileLocalBackend(tmp_path).set("k", "v")

        run(scenario())
        assert threads and threads[0] != loop_thread[0]


class TestLocalBackendBatches:
    """Tests for batch operations and degraded reads."""

    def test_multi_get_maps_absent_to_none(self):
        """Test that absent keys come back as None."""
        backend = InMemoryLocalBackend({"a": "1"})
        assert run(backend.multi_get(["a", "b"])) == [("a", "1"), ("b", None)]

    def test_multi_set_partial_failure(self):
        """Test that a batch attempts every key and reports the failures."""
        backend = InMemoryLocalBackend()
        backend.failing_keys = {"b"}

        with pytest.raises(IOFailure) as exc_info:
            run(backend.multi_set([("a", "1"), ("b", "2"), ("c", "3")]))

        assert exc_info.value.failed_keys == ["b"]
        assert backend.snapshot() == {"a": "1", "c": "3"}

    def test_multi_remove_partial_failure(self):
        """Test that removal continues past a failing key."""
        backend = InMemoryLocalBackend({"a": "1", "b": "2", "c": "3"})
        backend.failing_keys = {"a"}

        with pytest.raises(IOFailure) as exc_info:
            run(backend.multi_remove(["a", "b", "c"]))

        assert exc_info.value.failed_keys == ["a"]
        assert backend.snapshot() == {"a": "1"}

    def test_get_value_degrades_to_default(self):
        """Test that unreadable or corrupt values read as the default."""
        backend = InMemoryLocalBackend({"bad": "{oops", "good": '{"x":1}'})

        assert run(backend.get_value("good")) == {"x": 1}
        assert run(backend.get_value("bad", default="fallback")) == "fallback"
        assert run(backend.get_value("missing", default=0)) == 0

        backend.fail_reads = True
        assert run(backend.get_value("good", default="down")) == "down"

    def test_get_value_with_model(self):
        """Test typed reads."""
        backend = InMemoryLocalBackend({"m": '{"lastScreen":"budget","timestamp":1}'})
        marker = run(backend.get_value("m", model=NavigationMarker))
        assert marker.last_screen == "budget"

    def test_storage_size(self):
        """Test the size estimate."""
        backend = InMemoryLocalBackend({"ab": "cde"})
        assert run(backend.storage_size()) == 5
        backend.fail_reads = True
        assert run(backend.storage_size()) == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
