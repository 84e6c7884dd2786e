"""
Survey response recording rules.

The condition and sequence position of a response are derived from the
experiment's current step and its stored order. Clients may still send
`condition` / `stepIndex`; they are only accepted when they agree.
"""

from typing import Any, Dict, Iterable, Optional, Tuple

from ..errors import ValidationError
from .conditions import Condition
from .models import ResponseRecord, SurveyAnswers
from .order_assignment import OrderAssignment
from .step_machine import expected_survey


def client_tags(payload: Dict[str, Any]) -> Tuple[Optional[Condition], Optional[int]]:
    """Parse the optional client-supplied condition and step index."""
    condition = None
    step_index = None
    if payload.get('condition') is not None:
        try:
            condition = Condition.parse(payload['condition'])
        except ValueError:
            raise ValidationError("Invalid survey response",
                                  details={'condition': 'unknown condition'})
    raw_index = payload.get('stepIndex')
    if raw_index is not None:
        if isinstance(raw_index, bool) or not isinstance(raw_index, int) or not 1 <= raw_index <= 3:
            raise ValidationError("Invalid survey response",
                                  details={'stepIndex': 'must be 1, 2 or 3'})
        step_index = raw_index
    return condition, step_index


def find_replay(payload: Dict[str, Any], current_step: int,
                responses: Iterable[ResponseRecord]) -> Optional[ResponseRecord]:
    """Return the stored response a retried submission refers to, if any.

    A client that timed out after a successful write resubmits the same
    stepIndex while the experiment already sits on the exposure step that
    follows that survey. Only there is the stored response returned instead
    of appending a duplicate; anywhere else the tags are checked against the
    open survey by `build_response`.
    """
    condition, step_index = client_tags(payload)
    if step_index is None or current_step != 2 * step_index + 1:
        return None
    for stored in responses:
        if stored.step_index != step_index:
            continue
        if condition is not None and condition != stored.condition:
            raise ValidationError(
                f"step {step_index} was answered for {stored.condition.value}, not {condition.value}")
        return stored
    return None


def build_response(payload: Dict[str, Any], current_step: int,
                   order: OrderAssignment, timestamp: str) -> ResponseRecord:
    """Validate a survey payload against the open survey step.

    Raises:
        StepTransitionError: no survey is open at `current_step`.
        ValidationError: bad answers, or client tags that disagree with the
            position derived from the step and order.
    """
    condition, step_index = expected_survey(current_step, order)

    claimed_condition, claimed_index = client_tags(payload)
    mismatches = {}
    if claimed_condition is not None and claimed_condition != condition:
        mismatches['condition'] = f'expected {condition.value}'
    if claimed_index is not None and claimed_index != step_index:
        mismatches['stepIndex'] = f'expected {step_index}'
    if mismatches:
        raise ValidationError("Survey does not match the current step", details=mismatches)

    answers = SurveyAnswers.from_payload(payload)
    return ResponseRecord(condition=condition, step_index=step_index,
                          answers=answers, timestamp=timestamp)
