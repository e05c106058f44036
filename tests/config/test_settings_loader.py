"""
Tests for the YAML settings loader (approval_config).

Covers:
- Packaged default.yaml loads and matches the documented defaults
- load_settings_file(): wrapped and top-level layouts, missing keys
- parse_settings(): type and range validation, unknown keys
- parse_threshold(): request type, numeric max_value
"""

from decimal import Decimal

import pytest
import yaml

from approval_config import (
    DEFAULT_SETTINGS_FILE,
    default_settings,
    load_settings_file,
    parse_settings,
    parse_threshold,
)
from approval_kernel.domain.approval import (
    ApprovalSettings,
    AutoApproveThreshold,
    RequestType,
)
from approval_kernel.exceptions import InvalidSettingsError


class TestDefaultSettings:

    def test_packaged_file_exists(self):
        assert DEFAULT_SETTINGS_FILE.is_file()

    def test_defaults(self):
        settings = default_settings()
        assert settings.max_approval_levels == 4
        assert settings.hr_always_final_level is True
        assert settings.escalation_days == 3
        assert settings.allow_delegation is True
        assert settings.reserve_hr_slot is False
        assert settings.auto_approve_thresholds == ()


class TestLoadSettingsFile:

    def test_wrapped_layout(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(yaml.safe_dump({
            "approval_settings": {
                "max_approval_levels": 3,
                "escalation_days": 5,
                "auto_approve_thresholds": [
                    {"request_type": "leave", "field": "days", "max_value": 1},
                ],
            },
        }))

        settings = load_settings_file(path)

        assert settings.max_approval_levels == 3
        assert settings.escalation_days == 5
        assert settings.auto_approve_thresholds == (
            AutoApproveThreshold(RequestType.LEAVE, "days", Decimal("1")),
        )
        assert settings.allow_delegation is True

    def test_top_level_layout(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("reserve_hr_slot: true\n")

        assert load_settings_file(str(path)).reserve_hr_slot is True

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("")

        assert load_settings_file(path) == ApprovalSettings()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings_file(tmp_path / "nope.yaml")


class TestParseSettings:

    @pytest.mark.parametrize(
        "data, field",
        [
            ({"max_approval_levels": 0}, "max_approval_levels"),
            ({"max_approval_levels": "4"}, "max_approval_levels"),
            ({"max_approval_levels": True}, "max_approval_levels"),
            ({"escalation_days": -1}, "escalation_days"),
            ({"allow_delegation": "yes"}, "allow_delegation"),
            ({"escalation_hours": 3}, "escalation_hours"),
        ],
    )
    def test_invalid(self, data, field):
        with pytest.raises(InvalidSettingsError) as exc_info:
            parse_settings(data)
        assert exc_info.value.field == field

    def test_not_a_mapping(self):
        with pytest.raises(InvalidSettingsError):
            parse_settings(["max_approval_levels", 4])

    def test_null_threshold_list(self):
        assert parse_settings({"auto_approve_thresholds": None}).auto_approve_thresholds == ()


class TestParseThreshold:

    def test_float_max_value_kept_exact(self):
        threshold = parse_threshold({"request_type": "overtime", "field": "hours", "max_value": 2.5})
        assert threshold.max_value == Decimal("2.5")

    @pytest.mark.parametrize(
        "data",
        [
            {"request_type": "bonus", "field": "amount", "max_value": 1},
            {"request_type": "loan", "field": "amount"},
            {"request_type": "loan", "field": "amount", "max_value": "lots"},
            {"request_type": "loan", "field": "amount", "max_value": True},
            {"request_type": "loan", "field": "amount", "max_value": "Infinity"},
            "loan.amount <= 100",
        ],
    )
    def test_invalid(self, data):
        with pytest.raises(InvalidSettingsError):
            parse_threshold(data)

    def test_negative_rejected_by_settings_validation(self):
        with pytest.raises(InvalidSettingsError):
            parse_settings({
                "auto_approve_thresholds": [
                    {"request_type": "loan", "field": "amount", "max_value": -5},
                ],
            })
