"""
The three explanation conditions of the study.

A = feature-focused, B = profile-based (social proof), C = context-based
(gift intent). Conditions are compared by identity, never by free strings:
payloads are parsed through `Condition.parse()` at the edge.
"""

from enum import Enum
from typing import Any, Dict


class Condition(str, Enum):
    FEATURE_FOCUSED = 'featureFocused'
    PROFILE_BASED = 'profileBased'
    CONTEXT_BASED = 'contextBased'

    @property
    def code(self) -> str:
        return CONDITION_CODES[self]

    @property
    def label(self) -> str:
        return CONDITION_LABELS[self]

    @classmethod
    def parse(cls, value: Any) -> 'Condition':
        """Return the Condition for a wire value; raise ValueError otherwise."""
        if isinstance(value, cls):
            return value
        for condition in cls:
            if value == condition.value:
                return condition
        raise ValueError(f"unknown condition: {value!r}")


CONDITION_CODES: Dict[Condition, str] = {
    Condition.FEATURE_FOCUSED: 'A',
    Condition.PROFILE_BASED: 'B',
    Condition.CONTEXT_BASED: 'C',
}

CONDITION_LABELS: Dict[Condition, str] = {
    Condition.FEATURE_FOCUSED: 'A = Product features',
    Condition.PROFILE_BASED: 'B = Recipient profile',
    Condition.CONTEXT_BASED: 'C = Gift intent',
}

# Canonical order of the condition set (A, B, C)
CONDITIONS = (Condition.FEATURE_FOCUSED, Condition.PROFILE_BASED, Condition.CONTEXT_BASED)
