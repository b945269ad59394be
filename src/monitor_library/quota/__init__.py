# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

from .parser import classify_model, parse_quota_response, summarize_family
from .poller import QuotaPoller
from .tokens import TokenManager

__all__ = [
    "QuotaPoller",
    "TokenManager",
    "classify_model",
    "parse_quota_response",
    "summarize_family",
]
