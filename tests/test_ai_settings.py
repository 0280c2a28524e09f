"""Tests for AI settings snapshots, presets and the YAML settings store."""

from decimal import Decimal

import pytest
import yaml

from helpdesk_intel.ai_settings.domain import (
    CUSTOM_PRESET,
    AISettings,
    EscalationRule,
    RateLimitConfig,
)
from helpdesk_intel.ai_settings.infrastructure import AISettingsManager
from helpdesk_intel.core import ValidationException


class TestPresets:

    def test_applying_a_preset_overwrites_bundled_fields(self):
        config = RateLimitConfig().apply_preset("Strict")

        assert config.max_requests_per_minute == 10
        assert config.daily_limit_usd == Decimal("1")
        assert config.active_preset == "Strict"

    def test_editing_a_bundled_field_turns_preset_custom(self):
        config = RateLimitConfig().apply_preset("Balanced").with_changes(max_requests_per_minute=21)
        assert config.active_preset == CUSTOM_PRESET

    def test_reverting_the_edit_restores_the_preset_label(self):
        config = (
            RateLimitConfig()
            .apply_preset("Balanced")
            .with_changes(max_requests_per_minute=21)
            .with_changes(max_requests_per_minute=20)
        )
        assert config.active_preset == "Balanced"

    def test_non_bundled_field_does_not_dirty_preset(self):
        config = RateLimitConfig().apply_preset("Generous").with_changes(is_free_tier_account=False)
        assert config.active_preset == "Generous"

    def test_unknown_preset_is_rejected(self):
        with pytest.raises(ValidationException):
            RateLimitConfig().apply_preset("Unlimited")

    def test_account_defaults_differ_by_tier(self):
        free = RateLimitConfig.for_account(is_free_tier=True)
        paid = RateLimitConfig.for_account(is_free_tier=False)

        assert free.max_requests_per_day == 50
        assert paid.max_tokens_per_request == 4000


class TestAISettings:

    def test_out_of_range_numbers_are_clamped(self):
        settings = AISettings(max_response_length=20, response_timeout=600)

        assert settings.max_response_length == 100
        assert settings.response_timeout == 120

    def test_legacy_model_key_is_accepted(self):
        settings = AISettings.model_validate({"bedrockModel": "anthropic.claude-3-haiku-20240307-v1:0"})
        assert settings.model_id == "anthropic.claude-3-haiku-20240307-v1:0"

    def test_escalation_team_becomes_lowest_priority_rule(self):
        settings = AISettings(
            escalation_team_id=9,
            escalation_rules=[EscalationRule(id=4, complexity_threshold=80, team_id=2, priority=1)]
        )

        rules = settings.effective_escalation_rules()
        assert [r.team_id for r in rules] == [2, 9]
        assert rules[1].id == 0
        assert rules[1].priority < rules[0].priority


class TestAISettingsManager:

    def test_missing_file_loads_defaults(self, tmp_path):
        manager = AISettingsManager()
        settings = manager.load(tmp_path / "absent.yaml")
        assert settings == AISettings()

    def test_reload_swaps_the_snapshot(self, tmp_path):
        path = tmp_path / "ai_settings.yaml"
        path.write_text(yaml.safe_dump({"version": 1, "confidence_threshold": 0.6}))
        manager = AISettingsManager()
        manager.load(path)

        path.write_text(yaml.safe_dump({"version": 2, "confidence_threshold": 0.9}))
        assert manager.reload() is True

        snapshot = manager.snapshot()
        assert snapshot.version == 2
        assert snapshot.confidence_threshold == 0.9

    def test_invalid_file_keeps_previous_snapshot(self, tmp_path):
        path = tmp_path / "ai_settings.yaml"
        path.write_text(yaml.safe_dump({"version": 3}))
        manager = AISettingsManager()
        manager.load(path)

        path.write_text(yaml.safe_dump({"confidence_threshold": 7}))
        assert manager.reload() is False
        assert manager.snapshot().version == 3

    def test_save_round_trips_through_yaml(self, tmp_path):
        path = tmp_path / "ai_settings.yaml"
        manager = AISettingsManager()
        manager.load(path)

        manager.save(AISettings(version=5, rate_limits=RateLimitConfig().apply_preset("Strict")))
        fresh = AISettingsManager()

        assert fresh.load(path).rate_limits.active_preset == "Strict"
