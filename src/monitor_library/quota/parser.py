# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Quota response parsing and per-family aggregation.

Response format (fetchAvailableModels):
    {
        "models": {
            "claude-sonnet-4-5": {
                "displayName": "Claude Sonnet 4.5",
                "quotaInfo": {"remainingFraction": 0.4, "resetTime": "2026-01-01T00:00:00Z"}
            },
            ...
        }
    }

Family classification is a substring match on the model name. It is a
heuristic: a future model whose name lacks the expected markers lands in
the unclassified bucket and does not affect family aggregates.
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..core.constants import CLAUDE_MODEL_MARKERS, GEMINI_MODEL_MARKERS
from ..core.types import ModelFamily, ModelQuota, QuotaRecord


def classify_model(model_name: str) -> Optional[ModelFamily]:
    """Family of a model by case-insensitive name match, or None."""
    name = model_name.lower()
    if any(marker in name for marker in CLAUDE_MODEL_MARKERS):
        return ModelFamily.CLAUDE
    if any(marker in name for marker in GEMINI_MODEL_MARKERS):
        return ModelFamily.GEMINI
    return None


_FRACTION_RE = re.compile(r"\.(\d+)")


def _normalize_fraction(match: "re.Match[str]") -> str:
    # fromisoformat on 3.10 only takes 3 or 6 fractional digits
    return "." + match.group(1)[:6].ljust(6, "0")


def parse_reset_time(value: Any) -> Optional[int]:
    """Convert an RFC 3339 reset time to epoch ms; None if unparseable."""
    if not isinstance(value, str) or not value:
        return None
    text = _FRACTION_RE.sub(_normalize_fraction, value.strip(), count=1)
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    return int(dt.timestamp()) * 1000 + dt.microsecond // 1000


def _percent(fraction: float) -> int:
    # Round half up
    return int(fraction * 100 + 0.5)


def parse_quota_response(data: Any) -> List[ModelQuota]:
    """
    Extract per-model quota entries.

    Entries without ``quotaInfo`` are skipped. A missing remainingFraction
    means the model is fully available (1.0).
    """
    if not isinstance(data, dict):
        return []
    models = data.get("models")
    if not isinstance(models, dict):
        return []

    result: List[ModelQuota] = []
    for model_name, model_data in models.items():
        if not isinstance(model_data, dict):
            continue
        quota_info = model_data.get("quotaInfo")
        if not isinstance(quota_info, dict):
            continue

        fraction = quota_info.get("remainingFraction")
        if isinstance(fraction, bool) or not isinstance(fraction, (int, float)):
            fraction = 1.0
        fraction = float(fraction)

        reset_time = quota_info.get("resetTime") or None
        if not isinstance(reset_time, str):
            reset_time = None

        result.append(
            ModelQuota(
                model_name=model_name,
                display_name=model_data.get("displayName") or model_name,
                remaining_fraction=fraction,
                remaining_percent=_percent(fraction),
                reset_time=reset_time,
                reset_time_ms=parse_reset_time(reset_time),
                family=classify_model(model_name),
            )
        )
    return result


def summarize_family(
    models: Sequence[ModelQuota],
) -> Tuple[Optional[int], Optional[int]]:
    """
    Effective quota of a family: the most constrained model gates it.

    Returns:
        (minimum remaining percent, reset time of that same model),
        or (None, None) when the family has no models
    """
    if not models:
        return None, None
    tightest = min(models, key=lambda m: m.remaining_percent)
    return tightest.remaining_percent, tightest.reset_time_ms


def build_quota_record(
    email: str,
    project_id: Optional[str],
    models: Sequence[ModelQuota],
    fetched_at: int,
) -> QuotaRecord:
    """Assemble a QuotaRecord with family aggregates from parsed models."""
    claude_percent, claude_reset = summarize_family(
        [m for m in models if m.family is ModelFamily.CLAUDE]
    )
    gemini_percent, gemini_reset = summarize_family(
        [m for m in models if m.family is ModelFamily.GEMINI]
    )
    return QuotaRecord(
        email=email,
        project_id=project_id,
        last_fetched=fetched_at,
        fetch_error=None,
        models=tuple(models),
        claude_quota_percent=claude_percent,
        claude_reset_time=claude_reset,
        gemini_quota_percent=gemini_percent,
        gemini_reset_time=gemini_reset,
    )


def quota_summary(record: QuotaRecord) -> Dict[str, Optional[int]]:
    """Compact per-family view used in log lines."""
    return {
        family.value: record.family_quota(family)[0] for family in ModelFamily
    }
