"""
Tests for provisioner.orchestration.state_store
=================================================

Covers the KEY='value' encoding, the whole-file parser, the load/get/put
lifecycle and the durability guarantees of FileStateStore.
"""

import os
import stat

import pytest

from provisioner.core.exceptions import StateError
from provisioner.orchestration.state_store import (
    FileStateStore,
    InMemoryStateStore,
    encode_entry,
    parse_entries,
)


# =============================================================================
# Test: Encoding and Parsing
# =============================================================================
class TestEncoding:
    """Values survive the file format unchanged."""

    def test_plain_value(self) -> None:
        assert encode_entry("REGION", "us-central1") == "REGION='us-central1'"

    def test_single_quote_is_escaped(self) -> None:
        assert encode_entry("K", "it's") == "K='it'\"'\"'s'"

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "with spaces  inside",
            "it's a 'quoted' value",
            "line one\nline two",
            "$HOME `cmd` \\ \"dq\"",
            "abc+/==",
        ],
    )
    def test_encoded_value_parses_back(self, value) -> None:
        assert parse_entries(encode_entry("KEY", value) + "\n") == {"KEY": value}


class TestParseEntries:
    """Tolerated hand edits and malformed input."""

    def test_order_is_preserved(self) -> None:
        text = "B='2'\nA='1'\nC='3'\n"
        assert list(parse_entries(text)) == ["B", "A", "C"]

    def test_comments_blank_lines_and_export(self) -> None:
        text = "# state\n\nexport PROJECT_ID='acme'\nREGION='eu'  # trailing\n"
        assert parse_entries(text) == {"PROJECT_ID": "acme", "REGION": "eu"}

    def test_double_quotes_and_bare_values(self) -> None:
        text = 'A="x \\"y\\" $z"\nB=bare\nC=\n'
        assert parse_entries(text) == {"A": 'x "y" $z', "B": "bare", "C": ""}

    def test_later_duplicate_wins_and_moves_to_end(self) -> None:
        entries = parse_entries("A='1'\nB='2'\nA='3'\n")
        assert entries == {"B": "2", "A": "3"}
        assert list(entries) == ["B", "A"]

    def test_malformed_line(self) -> None:
        with pytest.raises(StateError) as exc_info:
            parse_entries("A='1'\nthis is not an entry\n")
        assert exc_info.value.error_code == "STATE_PARSE_ERROR"
        assert exc_info.value.details["entry"] == "this"

    def test_unterminated_quote(self) -> None:
        with pytest.raises(StateError):
            parse_entries("A='never closed\n")


# =============================================================================
# Test: Lifecycle
# =============================================================================
class TestStoreLifecycle:
    """load() exactly once, then get()/put()."""

    async def test_get_before_load(self) -> None:
        store = InMemoryStateStore()
        with pytest.raises(StateError) as exc_info:
            await store.get("REGION")
        assert exc_info.value.error_code == "STATE_NOT_LOADED"

    async def test_put_before_load(self) -> None:
        store = InMemoryStateStore()
        with pytest.raises(StateError):
            await store.put("REGION", "eu")

    async def test_second_load_fails(self) -> None:
        store = InMemoryStateStore()
        await store.load()
        with pytest.raises(StateError) as exc_info:
            await store.load()
        assert exc_info.value.error_code == "STATE_ALREADY_LOADED"

    async def test_load_exports_without_overwriting(self) -> None:
        environ = {"REGION": "from-override"}
        store = InMemoryStateStore({"REGION": "from-file", "PROJECT_ID": "acme"}, environ=environ)
        loaded = await store.load()
        assert loaded == {"REGION": "from-file", "PROJECT_ID": "acme"}
        assert environ == {"REGION": "from-override", "PROJECT_ID": "acme"}

    async def test_put_is_visible_and_exported(self) -> None:
        environ: dict[str, str] = {}
        store = InMemoryStateStore(environ=environ)
        await store.load()
        await store.put("SQL_USER_NAME", "n8n_user")
        assert await store.get("SQL_USER_NAME") == "n8n_user"
        assert environ["SQL_USER_NAME"] == "n8n_user"
        assert store.backing == {"SQL_USER_NAME": "n8n_user"}
        assert store.writes == 1

    async def test_rewrite_moves_key_to_end(self) -> None:
        store = InMemoryStateStore({"A": "1", "B": "2"})
        await store.load()
        await store.put("A", "3")
        assert list(store.entries()) == ["B", "A"]
        assert store.entries()["A"] == "3"

    async def test_invalid_key(self) -> None:
        store = InMemoryStateStore()
        await store.load()
        with pytest.raises(StateError) as exc_info:
            await store.put("NOT A KEY", "x")
        assert exc_info.value.error_code == "STATE_INVALID_KEY"
        assert store.writes == 0

    async def test_get_missing_key(self) -> None:
        store = InMemoryStateStore()
        await store.load()
        assert await store.get("NOPE") is None


# =============================================================================
# Test: FileStateStore
# =============================================================================
class TestFileStateStore:
    """Durability and file format on disk."""

    async def test_missing_file_is_empty_state(self, tmp_path) -> None:
        store = FileStateStore(tmp_path / ".env", environ={})
        assert await store.load() == {}
        assert not (tmp_path / ".env").exists()

    async def test_put_writes_file_with_mode_0600(self, tmp_path) -> None:
        path = tmp_path / ".env"
        store = FileStateStore(path, environ={})
        await store.load()
        await store.put("PROJECT_ID", "acme")
        await store.put("SQL_USER_PASSWORD", "p'w d")

        assert path.read_text() == "PROJECT_ID='acme'\nSQL_USER_PASSWORD='p'\"'\"'w d'\n"
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    async def test_values_survive_a_reload(self, tmp_path) -> None:
        path = tmp_path / ".env"
        first = FileStateStore(path, environ={})
        await first.load()
        await first.put("A", "multi\nline value")
        await first.put("B", "x")
        await first.put("A", "final 'one'")

        second = FileStateStore(path, environ={})
        entries = await second.load()
        assert entries == {"B": "x", "A": "final 'one'"}
        assert list(entries) == ["B", "A"]

    async def test_no_temp_files_left_behind(self, tmp_path) -> None:
        store = FileStateStore(tmp_path / ".env", environ={})
        await store.load()
        await store.put("A", "1")
        assert sorted(p.name for p in tmp_path.iterdir()) == [".env"]

    async def test_hand_edited_file(self, tmp_path) -> None:
        path = tmp_path / ".env"
        path.write_text("# written by hand\nexport SQL_USER_PASSWORD=\"abc def\"\n")
        environ: dict[str, str] = {}
        store = FileStateStore(path, environ=environ)
        await store.load()
        assert environ["SQL_USER_PASSWORD"] == "abc def"

    async def test_invalid_file_fails_load(self, tmp_path) -> None:
        path = tmp_path / ".env"
        path.write_text("garbage line\n")
        store = FileStateStore(path, environ={})
        with pytest.raises(StateError):
            await store.load()
        assert store.loaded is False

    async def test_undecodable_file_fails_load(self, tmp_path) -> None:
        path = tmp_path / ".env"
        path.write_bytes(b"REGION='\xff'\n")
        store = FileStateStore(path, environ={})
        with pytest.raises(StateError) as exc_info:
            await store.load()
        assert "UTF-8" in exc_info.value.message
        assert exc_info.value.hint is not None
        assert store.loaded is False

    async def test_unwritable_directory(self, tmp_path) -> None:
        store = FileStateStore(tmp_path / "missing-dir" / ".env", environ={})
        await store.load()
        with pytest.raises(StateError):
            await store.put("A", "1")
        assert store.entries() == {}
