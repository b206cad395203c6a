"""Tests for error handling classes."""

import pytest

from fleetdash.core.errors import (
    ActionInFlightError,
    ActionNotPermittedError,
    ChannelClosedError,
    CommandFailedError,
    ErrorCode,
    FleetDashError,
    SnapshotDecodeError,
)


class TestCommandFailedError:
    """Tests for CommandFailedError."""

    def test_inherits_fleetdash_error(self) -> None:
        exc = CommandFailedError("start", instance_id="a")
        assert isinstance(exc, FleetDashError)
        assert isinstance(exc, Exception)

    def test_has_correct_error_code(self) -> None:
        assert CommandFailedError("start").code == ErrorCode.COMMAND_FAILED

    def test_message_with_status_code(self) -> None:
        exc = CommandFailedError("delete", instance_id="wpdev-1", status_code=500)
        assert exc.status_code == 500
        assert exc.message == "Command delete on wpdev-1 failed with HTTP 500"

    def test_message_without_status_code(self) -> None:
        """Transport failures carry no status code."""
        exc = CommandFailedError("purge")
        assert exc.status_code is None
        assert exc.message == "Command purge failed"

    def test_custom_message(self) -> None:
        exc = CommandFailedError("start", message="connection refused")
        assert exc.message == "connection refused"
        assert str(exc) == "connection refused"

    def test_to_detail(self) -> None:
        detail = CommandFailedError("stop", instance_id="a", status_code=404).to_detail()
        assert detail.code == "COMMAND_FAILED"
        assert detail.message == "Command stop on a failed with HTTP 404"


class TestErrorCodeEnum:
    def test_all_error_codes(self) -> None:
        expected = [
            "COMMAND_FAILED",
            "ACTION_IN_FLIGHT",
            "ACTION_NOT_PERMITTED",
            "SNAPSHOT_MALFORMED",
            "CHANNEL_CLOSED",
        ]
        for code in expected:
            assert hasattr(ErrorCode, code)
            assert ErrorCode[code].value == code


class TestOtherErrors:
    """Tests for other error classes to ensure consistency."""

    @pytest.mark.parametrize(
        ("exc", "code"),
        [
            (ActionInFlightError("a", "start"), ErrorCode.ACTION_IN_FLIGHT),
            (ActionNotPermittedError("stop", "a"), ErrorCode.ACTION_NOT_PERMITTED),
            (SnapshotDecodeError(), ErrorCode.SNAPSHOT_MALFORMED),
            (ChannelClosedError(), ErrorCode.CHANNEL_CLOSED),
        ],
    )
    def test_codes(self, exc: FleetDashError, code: ErrorCode) -> None:
        assert isinstance(exc, FleetDashError)
        assert exc.code == code
        assert exc.message

    def test_in_flight_message(self) -> None:
        exc = ActionInFlightError("wpdev-1", "restart")
        assert exc.instance_id == "wpdev-1"
        assert exc.message == "restart already in flight for wpdev-1"

    def test_not_permitted_fleet_message(self) -> None:
        assert ActionNotPermittedError("purge").message == "purge is not permitted right now"
