"""
Tests for quota response parsing and per-family aggregation.
"""

import pytest

from monitor_library.core.types import ModelFamily
from monitor_library.quota.parser import (
    build_quota_record,
    classify_model,
    parse_quota_response,
    parse_reset_time,
    summarize_family,
)

RESET_A = "2026-01-01T00:00:00Z"
RESET_B = "2026-01-01T05:00:00Z"


def _response(**models):
    return {"models": models}


class TestClassifyModel:
    @pytest.mark.parametrize(
        "name, family",
        [
            ("claude-sonnet-4-5", ModelFamily.CLAUDE),
            ("Claude-Opus", ModelFamily.CLAUDE),
            ("anthropic/thinking", ModelFamily.CLAUDE),
            ("gemini-3-pro-high", ModelFamily.GEMINI),
            ("GEMINI-2.5-flash", ModelFamily.GEMINI),
            ("gpt-oss-120b", None),
            ("chat_20706", None),
        ],
    )
    def test_substring_match(self, name, family):
        assert classify_model(name) == family


class TestParseQuotaResponse:
    def test_family_minimum_and_its_reset(self):
        models = parse_quota_response(
            _response(
                **{
                    "claude-sonnet": {
                        "displayName": "Claude Sonnet",
                        "quotaInfo": {"remainingFraction": 0.7, "resetTime": RESET_A},
                    },
                    "claude-opus": {
                        "quotaInfo": {"remainingFraction": 0.4, "resetTime": RESET_B},
                    },
                }
            )
        )
        record = build_quota_record("a@x.io", "p", models, fetched_at=123)

        assert record.claude_quota_percent == 40
        assert record.claude_reset_time == parse_reset_time(RESET_B)
        assert record.gemini_quota_percent is None
        assert record.gemini_reset_time is None
        assert record.last_fetched == 123
        assert [m.display_name for m in record.models] == ["Claude Sonnet", "claude-opus"]

    def test_unclassified_models_do_not_affect_families(self):
        models = parse_quota_response(
            _response(
                **{
                    "gpt-oss-120b": {"quotaInfo": {"remainingFraction": 0.0}},
                    "gemini-3-pro": {"quotaInfo": {"remainingFraction": 0.9}},
                }
            )
        )
        record = build_quota_record("a@x.io", None, models, fetched_at=0)

        assert [m.model_name for m in record.unclassified_models] == ["gpt-oss-120b"]
        assert record.gemini_quota_percent == 90
        assert record.claude_quota_percent is None

    def test_missing_fraction_means_full(self):
        (model,) = parse_quota_response(
            _response(**{"gemini-flash": {"quotaInfo": {"resetTime": RESET_A}}})
        )
        assert model.remaining_fraction == 1.0
        assert model.remaining_percent == 100

    def test_entries_without_quota_info_are_skipped(self):
        models = parse_quota_response(
            _response(
                **{
                    "claude-sonnet": {"displayName": "Claude Sonnet"},
                    "gemini-flash": {"quotaInfo": {"remainingFraction": 0.5}},
                }
            )
        )
        assert [m.model_name for m in models] == ["gemini-flash"]

    def test_percent_rounds_half_up(self):
        (model,) = parse_quota_response(
            _response(**{"gemini-x": {"quotaInfo": {"remainingFraction": 0.125}}})
        )
        assert model.remaining_percent == 13

    @pytest.mark.parametrize("data", [None, [], {"models": []}, {}])
    def test_unexpected_shapes_are_empty(self, data):
        assert parse_quota_response(data) == []


class TestResetTimes:
    def test_parses_zulu_time(self):
        assert parse_reset_time("1970-01-01T00:00:01Z") == 1000

    @pytest.mark.parametrize(
        "value, millis",
        [
            ("1970-01-01T00:00:01.5Z", 1500),
            ("1970-01-01T00:00:01.25Z", 1250),
            ("1970-01-01T00:00:01.123Z", 1123),
            ("1970-01-01T00:00:01.123456Z", 1123),
            ("1970-01-01T00:00:01.123456789Z", 1123),
            ("1970-01-01T00:00:01.123456789+00:00", 1123),
        ],
    )
    def test_any_fraction_length(self, value, millis):
        assert parse_reset_time(value) == millis

    def test_nanosecond_reset_reaches_family_summary(self):
        models = parse_quota_response(
            _response(
                **{
                    "claude-opus": {
                        "quotaInfo": {
                            "remainingFraction": 0.4,
                            "resetTime": "2026-01-01T00:00:00.123456789Z",
                        }
                    }
                }
            )
        )
        record = build_quota_record("a@x.io", None, models, fetched_at=0)
        assert models[0].reset_time_ms == 1_767_225_600_123
        assert record.claude_reset_time == 1_767_225_600_123

    @pytest.mark.parametrize("value", [None, "", "tomorrow", 12])
    def test_unparseable_is_none(self, value):
        assert parse_reset_time(value) is None

    def test_empty_family_summary(self):
        assert summarize_family([]) == (None, None)
