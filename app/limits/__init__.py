"""Plan limits: quotas, evaluation and usage tracking"""

from app.limits.quota import UNLIMITED, Quota, is_unlimited
from app.limits.evaluator import LimitStatus, LimitClassification, classify

__all__ = [
    "UNLIMITED",
    "Quota",
    "is_unlimited",
    "LimitStatus",
    "LimitClassification",
    "classify",
]
