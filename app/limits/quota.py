"""Quota values: a non-negative integer or the explicit UNLIMITED marker"""

from typing import Union


class _Unlimited:
    """Singleton marker for a quota with no cap"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNLIMITED"

    def __reduce__(self):
        return (_Unlimited, ())


UNLIMITED = _Unlimited()

Quota = Union[int, _Unlimited]


def is_unlimited(quota: Quota) -> bool:
    return quota is UNLIMITED


def quota_to_int(quota: Quota):
    """Serialize a quota for JSON responses (None means unlimited)"""
    return None if quota is UNLIMITED else quota
