"""
tests/test_cli.py -- Tests for the main.py operator commands.

Covers:
  - create-user writes a hashed account to the given database
  - duplicate usernames and short passwords exit non-zero
  - the password prompt must be confirmed
  - magic-link prints a redeemable login URL
"""

from __future__ import annotations

import pytest

from auth.models import Role
from auth.passwords import verify_password
from auth.store import UserStore
from main import build_parser, main


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'auth.db'}"


def _create(db_url: str, username: str = "admin", *extra: str) -> int:
    return main(["--db-url", db_url, "create-user", username, "--group", "1", "--area", "HQ", *extra])


class TestCreateUser:
    def test_creates_hashed_account(self, db_url: str, capsys) -> None:
        assert _create(db_url, "admin", "--role", "admin", "--password", "long-enough-pw") == 0
        assert "Created user 'admin'" in capsys.readouterr().out

        store = UserStore(db_url)
        try:
            user = store.get_active_by_username("admin")
            assert user.role is Role.ADMIN
            assert user.group_id == 1
            assert user.hashed_password != "long-enough-pw"
            assert verify_password(user.hashed_password, "long-enough-pw")
        finally:
            store.close()

    def test_role_defaults_to_basic_user(self, db_url: str) -> None:
        _create(db_url, "viewer", "--password", "long-enough-pw")
        store = UserStore(db_url)
        try:
            assert store.get_active_by_username("viewer").role is Role.BASIC_USER
        finally:
            store.close()

    def test_duplicate_username(self, db_url: str, capsys) -> None:
        _create(db_url, "admin", "--password", "long-enough-pw")
        assert _create(db_url, "admin", "--password", "long-enough-pw") == 1
        assert "already exists" in capsys.readouterr().err

    def test_short_password(self, db_url: str, capsys) -> None:
        assert _create(db_url, "admin", "--password", "short") == 1
        assert "at least 8" in capsys.readouterr().err

    def test_prompted_password_must_match(self, db_url: str, monkeypatch) -> None:
        answers = iter(["long-enough-pw", "different-pw"])
        monkeypatch.setattr("main.getpass.getpass", lambda prompt="": next(answers))
        assert _create(db_url, "admin") == 1

    def test_prompted_password(self, db_url: str, monkeypatch) -> None:
        monkeypatch.setattr("main.getpass.getpass", lambda prompt="": "long-enough-pw")
        assert _create(db_url, "admin") == 0

    def test_unknown_role_rejected_by_parser(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["create-user", "x", "--group", "1", "--area", "HQ", "--role", "root"])


class TestMagicLink:
    def test_prints_login_link(self, db_url: str, capsys) -> None:
        _create(db_url, "alice", "--password", "long-enough-pw")
        capsys.readouterr()
        assert main(["--db-url", db_url, "magic-link", "alice"]) == 0
        out = capsys.readouterr().out
        assert "/verify?token=" in out
        token = out.strip().splitlines()[-1].split("/verify?token=", 1)[1]

        store = UserStore(db_url)
        try:
            record = store.get_magic_link(token)
            assert record is not None
            assert record.user_id == store.get_active_by_username("alice").id
            assert record.is_used is False
        finally:
            store.close()

    def test_unknown_user(self, db_url: str, capsys) -> None:
        assert main(["--db-url", db_url, "magic-link", "nobody"]) == 1
        assert "No active user" in capsys.readouterr().err
