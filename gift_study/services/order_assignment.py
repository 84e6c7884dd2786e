"""
Latin-square order assignment.

Each experiment sees all three conditions. The order is drawn uniformly from
the six permutations of the condition set so that, across participants,
every condition appears equally often in every position.
"""

import itertools
import random
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .conditions import CONDITIONS, Condition


@dataclass(frozen=True)
class OrderAssignment:
    """Condition sequence for one experiment plus its short code (e.g. 'BCA')."""
    sequence: Tuple[Condition, Condition, Condition]
    order_type: str

    def condition_at(self, step_index: int) -> Condition:
        """Condition at a 1-based position in the sequence."""
        if step_index < 1 or step_index > len(self.sequence):
            raise IndexError(f"step index out of range: {step_index}")
        return self.sequence[step_index - 1]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sequence': [c.value for c in self.sequence],
            'orderType': self.order_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OrderAssignment':
        """Rebuild a stored assignment; the order type must match the sequence."""
        sequence = tuple(Condition.parse(v) for v in data.get('sequence', []))
        if len(sequence) != 3 or len(set(sequence)) != 3:
            raise ValueError(f"invalid condition sequence: {data.get('sequence')!r}")
        order_type = _order_type(sequence)
        if data.get('orderType') not in (None, order_type):
            raise ValueError(f"order type {data.get('orderType')!r} does not match sequence")
        return cls(sequence=sequence, order_type=order_type)


def _order_type(sequence) -> str:
    return ''.join(c.code for c in sequence)


# All 3! orders of (A, B, C), in lexicographic order: ABC, ACB, BAC, BCA, CAB, CBA
LATIN_SQUARE_ORDERS: Tuple[OrderAssignment, ...] = tuple(
    OrderAssignment(sequence=perm, order_type=_order_type(perm))
    for perm in itertools.permutations(CONDITIONS)
)


def assign_order(rng: Optional[random.Random] = None) -> OrderAssignment:
    """Pick one of the six orders uniformly at random.

    Args:
        rng: Random source. Defaults to an OS-entropy backed SystemRandom,
            so no seed exists from which the order could be re-derived.

    Returns:
        OrderAssignment: The chosen order. Persist it; it is never recomputed.
    """
    source = rng if rng is not None else random.SystemRandom()
    return source.choice(LATIN_SQUARE_ORDERS)
