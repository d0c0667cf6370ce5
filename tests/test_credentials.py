"""Tests for key discovery and per-host credentials."""

from __future__ import annotations

from pathlib import Path

import asyncssh

from clusterssh.credentials import DEFAULT_KEY_FILES, Credentials, load_keyring
from clusterssh.hosts import Host


def _write_key(path: Path) -> asyncssh.SSHKey:
    key = asyncssh.generate_private_key("ecdsa-sha2-nistp256")
    key.write_private_key(str(path))
    return key


class TestLoadKeyring:
    def test_default_order(self) -> None:
        assert [Path(p).name for p in DEFAULT_KEY_FILES] == ["id_ecdsa", "id_rsa", "id_dsa"]

    def test_loads_valid_keys_in_order(self, tmp_path: Path) -> None:
        first = _write_key(tmp_path / "first")
        second = _write_key(tmp_path / "second")

        keys = load_keyring([tmp_path / "first", tmp_path / "second"])

        assert [k.public_data for k in keys] == [first.public_data, second.public_data]

    def test_skips_missing_and_unparsable(self, tmp_path: Path) -> None:
        _write_key(tmp_path / "id_rsa")
        (tmp_path / "id_ecdsa").write_text("not a key\n")

        keys = load_keyring(
            [tmp_path / "id_ecdsa", tmp_path / "id_rsa", tmp_path / "id_dsa"]
        )

        assert len(keys) == 1

    def test_nothing_found(self, tmp_path: Path) -> None:
        assert load_keyring([tmp_path / "missing"]) == []

    def test_discover(self, tmp_path: Path) -> None:
        _write_key(tmp_path / "id_ecdsa")

        credentials = Credentials.discover([tmp_path / "id_ecdsa"])

        assert len(credentials.keys) == 1


class TestForHost:
    def test_keys_only_without_password(self) -> None:
        options = Credentials().for_host(Host("web-1", user="alice"))

        assert options["username"] == "alice"
        assert options["client_keys"] == []
        assert options["preferred_auth"] == ("publickey",)
        assert "password" not in options

    def test_password_offered_after_keys(self) -> None:
        options = Credentials().for_host(Host("web-1", password="hunter2"))

        assert options["password"] == "hunter2"
        assert options["preferred_auth"] == ("publickey", "password")

    def test_per_host_copy(self, tmp_path: Path) -> None:
        _write_key(tmp_path / "key")
        credentials = Credentials.discover([tmp_path / "key"])

        first = credentials.for_host(Host("a", password="pw"))
        second = credentials.for_host(Host("b"))
        first["client_keys"].append(object())

        assert first["client_keys"] is not second["client_keys"]
        assert len(second["client_keys"]) == 1
        assert len(credentials.keys) == 1
        assert "password" not in second

    def test_agent_disabled(self) -> None:
        assert Credentials().for_host(Host("web-1"))["agent_path"] is None
