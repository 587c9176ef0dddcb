"""
Unit tests for BASTION shared types.

Tests zone helpers, enumerations, the request factory and the report.
"""

import dataclasses
from datetime import datetime, timedelta

import pytest

from bastion.types import (
    ALL_ZONES,
    NO_ZONES,
    AuthLevel,
    ExecutionReport,
    ResponseRequest,
    ResponseType,
    ResultCode,
    StepOutcome,
    StepStatus,
    SystemMode,
    bounded,
    format_zones,
    iter_zones,
    zone_mask,
)


# =============================================================================
# Zone Helpers
# =============================================================================

class TestZones:
    """Tests for zone bitmask helpers."""

    def test_iter_zones_lowest_first(self):
        assert list(iter_zones(zone_mask(9, 0, 5))) == [0, 5, 9]

    def test_iter_zones_all(self):
        assert list(iter_zones(ALL_ZONES)) == list(range(32))

    def test_iter_zones_empty(self):
        assert list(iter_zones(NO_ZONES)) == []

    def test_zone_mask(self):
        assert zone_mask(0, 5, 9) == 0b1000100001
        assert zone_mask() == 0
        assert zone_mask(31) == 0x80000000

    def test_zone_mask_out_of_range(self):
        with pytest.raises(ValueError):
            zone_mask(32)
        with pytest.raises(ValueError):
            zone_mask(-1)

    def test_format_zones(self):
        assert format_zones(ALL_ZONES) == "0xFFFFFFFF"
        assert format_zones(zone_mask(0, 4)) == "0x00000011"

    def test_bounded(self):
        assert bounded("short", 10) == "short"
        assert bounded("x" * 20, 10) == "xxxxxxx..."
        assert len(bounded("x" * 600, 512)) == 512


# =============================================================================
# Enumerations
# =============================================================================

class TestEnums:
    """Tests for response, mode and result enumerations."""

    def test_response_type_values(self):
        assert [t.value for t in ResponseType] == list(range(1, 9))
        assert ResponseType.LOCKDOWN == 1
        assert ResponseType.FULL_RECOVERY == 8

    def test_zone_scoped_types(self):
        scoped = {t for t in ResponseType if t.zone_scoped}
        assert scoped == {
            ResponseType.LOCKDOWN,
            ResponseType.NETWORK_ISOLATE,
            ResponseType.EVACUATION,
            ResponseType.PARTIAL_CONTAIN,
        }

    def test_result_codes(self):
        assert ResultCode.SUCCESS == 0
        assert ResultCode.INVALID_PARAM == -2
        assert ResultCode.TIMEOUT == -6
        assert ResultCode.CRITICAL_FAILURE == -99

    def test_auth_levels(self):
        assert AuthLevel.STAFF == 1
        assert AuthLevel.EXECUTIVE == 5

    def test_system_modes(self):
        assert SystemMode.NORMAL == 0
        assert SystemMode.RECOVERY == 4


# =============================================================================
# Request
# =============================================================================

class TestResponseRequest:
    """Tests for ResponseRequest."""

    def test_defaults(self):
        request = ResponseRequest(type=ResponseType.BACKUP_ACTIVATE, severity=3)
        assert request.target_zones == NO_ZONES
        assert request.duration == 0
        assert request.auth_level == AuthLevel.STAFF
        assert request.retry_count == 0
        assert request.timeout_seconds == 0
        assert isinstance(request.timestamp, datetime)

    def test_frozen(self):
        request = ResponseRequest(type=ResponseType.LOCKDOWN, severity=5)
        with pytest.raises(dataclasses.FrozenInstanceError):
            request.severity = 10

    def test_emergency_lockdown(self):
        request = ResponseRequest.emergency_lockdown(7)
        assert request.type == ResponseType.LOCKDOWN
        assert request.severity == 10
        assert request.target_zones == ALL_ZONES
        assert request.duration == 3600
        assert request.auth_level == AuthLevel.EXECUTIVE
        assert request.trigger_event == "Manual emergency trigger (level 7)"

    def test_emergency_lockdown_timestamps_are_fresh(self):
        before = datetime.now()
        request = ResponseRequest.emergency_lockdown(1)
        assert before <= request.timestamp <= datetime.now()

    def test_zones(self):
        request = ResponseRequest(
            type=ResponseType.NETWORK_ISOLATE, severity=5, target_zones=zone_mask(2, 3)
        )
        assert request.zones == [2, 3]

    def test_describe(self):
        request = ResponseRequest(
            type=ResponseType.EVACUATION,
            severity=8,
            target_zones=zone_mask(1),
            trigger_event="Fire alarm",
        )
        text = request.describe()
        assert "EVACUATION" in text
        assert "severity=8" in text
        assert "0x00000002" in text
        assert "Fire alarm" in text


# =============================================================================
# Report
# =============================================================================

class TestExecutionReport:
    """Tests for ExecutionReport."""

    def test_default_report(self):
        report = ExecutionReport()
        assert report.response_id is None
        assert report.overall_result == ResultCode.SUCCESS
        assert report.sub_operations == 0
        assert report.succeeded
        assert report.duration_seconds is None

    def test_duration(self):
        start = datetime(2026, 1, 1, 12, 0, 0)
        report = ExecutionReport(start_time=start, end_time=start + timedelta(seconds=2.5))
        assert report.duration_seconds == 2.5

    def test_failed_report(self):
        assert not ExecutionReport(overall_result=-1).succeeded

    def test_to_dict(self):
        stamp = datetime(2026, 1, 1, 12, 0, 0)
        report = ExecutionReport(
            response_id=stamp,
            overall_result=-2,
            start_time=stamp,
            end_time=stamp,
            sub_operations=2,
            success_count=1,
            failed_count=1,
            system_mode=SystemMode.LOCKDOWN,
            response_type=ResponseType.LOCKDOWN,
            steps=(
                StepOutcome("lock_physical_access", StepStatus.SUCCEEDED),
                StepOutcome("isolate_network_segments", StepStatus.FAILED, -2, "boom"),
            ),
        )
        data = report.to_dict()
        assert data["response_id"] == stamp.isoformat()
        assert data["overall_result"] == -2
        assert data["system_mode"] == "LOCKDOWN"
        assert data["response_type"] == "LOCKDOWN"
        assert data["steps"][1] == {
            "name": "isolate_network_segments",
            "status": "failed",
            "code": -2,
            "detail": "boom",
        }

    def test_step_outcome_ok(self):
        assert StepOutcome("a", StepStatus.SUCCEEDED).ok
        assert StepOutcome("a", StepStatus.WARNING).ok
        assert not StepOutcome("a", StepStatus.FAILED, -1).ok
