"""
Step state machine for a single experiment.

Steps (persisted as `current_step`):

    0 welcome            -> 1 via step update (consent acknowledged)
    1 exposure, pos 1    -> 2 via step update (finished reading)
    2 survey, pos 1      -> 3 via survey submission
    3 exposure, pos 2    -> 4 via step update
    4 survey, pos 2      -> 5 via survey submission
    5 exposure, pos 3    -> 6 via step update
    6 survey, pos 3      -> 7 via survey submission
    7 final comparison   -> 8 via comparison submission
    8 demographics       -> 9 via demographics submission
    9 completed (terminal)

Only n -> n+1 exists. This module holds the pure rules; the experiment
service applies them against the stored record.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional, Tuple

from ..errors import StepTransitionError
from .conditions import Condition
from .order_assignment import OrderAssignment


class Step(IntEnum):
    WELCOME = 0
    EXPOSURE_1 = 1
    SURVEY_1 = 2
    EXPOSURE_2 = 3
    SURVEY_2 = 4
    EXPOSURE_3 = 5
    SURVEY_3 = 6
    COMPARISON = 7
    DEMOGRAPHICS = 8
    COMPLETED = 9


INITIAL_STEP = Step.WELCOME
TERMINAL_STEP = Step.COMPLETED

EXPOSURE_STEPS = (Step.EXPOSURE_1, Step.EXPOSURE_2, Step.EXPOSURE_3)
SURVEY_STEPS = (Step.SURVEY_1, Step.SURVEY_2, Step.SURVEY_3)

# Steps the client may leave with a plain step update. Every other
# non-terminal step is left only by submitting its data.
MANUAL_EXIT_STEPS = (Step.WELCOME,) + EXPOSURE_STEPS

SCREEN_KINDS: Dict[Step, str] = {
    Step.WELCOME: 'welcome',
    Step.EXPOSURE_1: 'exposure',
    Step.SURVEY_1: 'survey',
    Step.EXPOSURE_2: 'exposure',
    Step.SURVEY_2: 'survey',
    Step.EXPOSURE_3: 'exposure',
    Step.SURVEY_3: 'survey',
    Step.COMPARISON: 'comparison',
    Step.DEMOGRAPHICS: 'demographics',
    Step.COMPLETED: 'completed',
}


@dataclass(frozen=True)
class Screen:
    """What the client shows for a given step."""
    step: Step
    kind: str
    condition: Optional[Condition] = None
    step_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'step': int(self.step),
            'kind': self.kind,
            'condition': self.condition.value if self.condition else None,
            'conditionLabel': self.condition.label if self.condition else None,
            'stepIndex': self.step_index,
        }


def to_step(value: Any) -> Step:
    """Coerce a stored or requested value into a Step."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise StepTransitionError(f"step must be an integer, got {value!r}")
    try:
        return Step(value)
    except ValueError:
        raise StepTransitionError(f"step out of range: {value}")


def sequence_position(step: Step) -> Optional[int]:
    """1-based position in the condition sequence for exposure/survey steps."""
    if step in EXPOSURE_STEPS or step in SURVEY_STEPS:
        return (int(step) + 1) // 2
    return None


def screen_for(step: Any, order: OrderAssignment) -> Screen:
    current = to_step(step)
    position = sequence_position(current)
    condition = order.condition_at(position) if position else None
    return Screen(step=current, kind=SCREEN_KINDS[current],
                  condition=condition, step_index=position)


def next_step(current: Step) -> Step:
    if current == TERMINAL_STEP:
        raise StepTransitionError("experiment is already completed")
    return Step(current + 1)


def check_step_update(current: Any, requested: Any) -> bool:
    """Validate a client step update.

    Returns:
        bool: True when `requested` is the next step and should be applied,
            False when it equals the current step (a replayed update that
            was already applied).

    Raises:
        StepTransitionError: on backward moves, skips, or when the current
            step must be left by a data submission instead.
    """
    cur = to_step(current)
    req = to_step(requested)
    if req == cur:
        return False
    if req < cur:
        raise StepTransitionError(f"cannot move back from step {int(cur)} to {int(req)}")
    if req != cur + 1:
        raise StepTransitionError(f"cannot skip from step {int(cur)} to {int(req)}")
    if cur not in MANUAL_EXIT_STEPS:
        raise StepTransitionError(
            f"step {int(cur)} ({SCREEN_KINDS[cur]}) is completed by submitting its form")
    return True


def expected_survey(current: Any, order: OrderAssignment) -> Tuple[Condition, int]:
    """Condition and 1-based step index the survey at `current` belongs to."""
    cur = to_step(current)
    if cur not in SURVEY_STEPS:
        raise StepTransitionError(
            f"no survey is open at step {int(cur)} ({SCREEN_KINDS[cur]})")
    position = sequence_position(cur)
    return order.condition_at(position), position
