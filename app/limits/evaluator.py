"""
Limit evaluation.

Pure functions that classify usage against a quota. Nothing here touches
the database, so the same inputs always give the same answer, which is
what threshold-crossing detection relies on when it compares the state
before and after an increment.
"""

import enum
import math
from dataclasses import dataclass

from app.limits.quota import UNLIMITED, Quota

WARNING_THRESHOLD_PERCENT = 80
BLOCKED_THRESHOLD_PERCENT = 100


class LimitStatus(str, enum.Enum):
    OK = "ok"
    WARNING = "warning"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class LimitClassification:
    status: LimitStatus
    remaining: Quota
    percent_used: float


def percent_of(current: int, limit: Quota) -> float:
    """Usage as a percentage of the quota.

    An unlimited quota is always 0%; a zero quota is always infinitely
    over budget, so it can never be crossed into.
    """
    if limit is UNLIMITED:
        return 0.0
    if limit == 0:
        return math.inf
    return current / limit * 100


def status_for_percent(percent_used: float) -> LimitStatus:
    if percent_used >= BLOCKED_THRESHOLD_PERCENT:
        return LimitStatus.BLOCKED
    if percent_used >= WARNING_THRESHOLD_PERCENT:
        return LimitStatus.WARNING
    return LimitStatus.OK


def classify(current: int, limit: Quota) -> LimitClassification:
    """Classify current usage against a quota as ok, warning or blocked"""
    if limit is UNLIMITED:
        return LimitClassification(status=LimitStatus.OK, remaining=UNLIMITED, percent_used=0.0)

    if limit == 0:
        return LimitClassification(status=LimitStatus.BLOCKED, remaining=0, percent_used=math.inf)

    percent_used = percent_of(current, limit)
    return LimitClassification(
        status=status_for_percent(percent_used),
        remaining=max(0, limit - current),
        percent_used=percent_used,
    )


def round_percent(percent_used: float) -> float:
    """One decimal place for display; an infinite percentage reads as 100"""
    if math.isinf(percent_used):
        return 100.0
    return math.floor(percent_used * 10 + 0.5) / 10
