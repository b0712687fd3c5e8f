"""Unit tests for core models and settings.

Tests cover:
- ``Credential`` validation and password masking.
- ``SessionState`` defaults, the connected token, and rotation offset clamping.
- Broadcast payload shapes (``StatusUpdate`` / ``SpeedUpdate``).
- ``Command`` vocabulary.
- ``Settings`` defaults, env overrides and validators.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from portalbot.core.models import (
    Command,
    Credential,
    CycleState,
    SessionState,
    SpeedUpdate,
    StatusUpdate,
    is_connected_status,
)
from portalbot.core.settings import Settings

# ---------------------------------------------------------------------------
# Credential
# ---------------------------------------------------------------------------


class TestCredential:
    def test_valid(self) -> None:
        cred = Credential(username="alice", password="s3cret")
        assert cred.username == "alice"
        assert cred.password == "s3cret"

    @pytest.mark.parametrize(
        ("username", "password"),
        [("", "pw"), ("alice", ""), ("   ", "pw")],
    )
    def test_empty_fields_rejected(self, username: str, password: str) -> None:
        with pytest.raises(ValidationError):
            Credential(username=username, password=password)

    def test_repr_masks_password(self) -> None:
        cred = Credential(username="alice", password="s3cret")
        assert "s3cret" not in repr(cred)
        assert "s3cret" not in str(cred)
        assert "alice" in repr(cred)

    def test_frozen(self) -> None:
        cred = Credential(username="alice", password="pw")
        with pytest.raises(ValidationError):
            cred.username = "bob"  # type: ignore[misc]


# ---------------------------------------------------------------------------
# SessionState
# ---------------------------------------------------------------------------


class TestSessionState:
    def test_defaults(self) -> None:
        state = SessionState()
        assert state.running is False
        assert state.last_good_index == -1
        assert state.connected is False

    def test_index_below_minus_one_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SessionState(last_good_index=-2)

    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            ("Connected", True),
            ("Connected with ID 3 (carol)", True),
            ("CONNECTED", True),
            ("Testing: 1/3 (alice)", False),
            ("All 3 IDs failed. Retrying...", False),
            ("No credentials.", False),
            # Substring match: the token also occurs inside "Disconnected".
            ("Disconnected by user.", True),
        ],
    )
    def test_connected_token(self, status: str, expected: bool) -> None:
        assert is_connected_status(status) is expected
        assert SessionState(status=status).connected is expected

    @pytest.mark.parametrize(
        ("last_good", "count", "expected"),
        [
            (-1, 3, 0),
            (0, 3, 0),
            (2, 3, 2),
            (3, 3, 0),
            (7, 2, 0),
            (0, 0, 0),
        ],
    )
    def test_rotation_offset_clamps(self, last_good: int, count: int, expected: int) -> None:
        assert SessionState(last_good_index=last_good).rotation_offset(count) == expected


# ---------------------------------------------------------------------------
# Events / commands / states
# ---------------------------------------------------------------------------


class TestPayloads:
    def test_status_update_shape(self) -> None:
        event = StatusUpdate(status="Connected", running=True)
        assert event.model_dump() == {
            "type": "STATUS_UPDATE",
            "status": "Connected",
            "running": True,
        }

    def test_speed_update_shape(self) -> None:
        event = SpeedUpdate(speed="41.50 Mbps")
        assert event.model_dump() == {"type": "SPEED_UPDATE", "speed": "41.50 Mbps"}

    def test_command_values(self) -> None:
        assert [c.value for c in Command] == ["start", "stop", "disconnect", "checkSpeed"]
        assert Command("checkSpeed") is Command.CHECK_SPEED

    def test_unknown_command_rejected(self) -> None:
        with pytest.raises(ValueError):
            Command("reboot")

    def test_cycle_states(self) -> None:
        assert {s.value for s in CycleState} == {
            "stopped",
            "probing",
            "rotating",
            "connected",
            "exhausted",
        }


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestSettings:
    def test_defaults(self, clean_env: None) -> None:
        s = Settings()
        assert s.portal_login_url == "http://172.16.68.6:8090/httpclient.html"
        assert s.portal_logout_url == "http://172.16.68.6:8090/logout.xml"
        assert s.probe_url == "http://www.google.com/generate_204"
        assert s.speed_test_size_bytes == 10 * 1024 * 1024
        assert s.login_timeout_s == 5.0
        assert s.probe_timeout_s == 3.0
        assert s.speed_test_timeout_s == 30.0
        assert s.poll_interval_s == 60.0
        assert s.log_level == "INFO"
        assert s.log_format == "text"

    def test_env_override(self, clean_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PORTAL_LOGIN_URL", "https://portal.example/login")
        monkeypatch.setenv("POLL_INTERVAL_S", "15")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("LOG_FORMAT", "JSON")
        s = Settings()
        assert s.portal_login_url == "https://portal.example/login"
        assert s.poll_interval_s == 15.0
        assert s.log_level == "DEBUG"
        assert s.log_format == "json"

    def test_non_http_url_rejected(self, clean_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PROBE_URL", "ftp://example.com/")
        with pytest.raises(ValidationError, match="http"):
            Settings()

    def test_invalid_log_level_rejected(
        self, clean_env: None, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("LOG_LEVEL", "CHATTY")
        with pytest.raises(ValidationError):
            Settings()

    def test_non_positive_interval_rejected(
        self, clean_env: None, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("POLL_INTERVAL_S", "0")
        with pytest.raises(ValidationError):
            Settings()

    def test_database_path_resolved(self, clean_env: None, tmp_path: Path) -> None:
        s = Settings(database_path=str(tmp_path / "state.db"))
        assert s.database_path_resolved == (tmp_path / "state.db").resolve()
