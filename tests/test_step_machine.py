import pytest

from gift_study.errors import StepTransitionError
from gift_study.services.conditions import Condition
from gift_study.services.order_assignment import OrderAssignment
from gift_study.services.step_machine import (
    Step, check_step_update, expected_survey, next_step, screen_for, sequence_position, to_step,
)


BCA = OrderAssignment.from_dict({'sequence': ['profileBased', 'contextBased', 'featureFocused']})


@pytest.mark.parametrize('current', [0, 1, 3, 5])
def test_manual_steps_advance_by_one(current):
    assert check_step_update(current, current + 1) is True


@pytest.mark.parametrize('current', range(0, 10))
def test_same_step_is_a_replay(current):
    assert check_step_update(current, current) is False


@pytest.mark.parametrize('current,requested', [
    (0, 2),   # skip
    (1, 5),
    (3, 2),   # backward
    (9, 0),
])
def test_skips_and_backward_moves_are_rejected(current, requested):
    with pytest.raises(StepTransitionError):
        check_step_update(current, requested)


@pytest.mark.parametrize('current', [2, 4, 6, 7, 8])
def test_data_steps_cannot_be_left_by_step_update(current):
    with pytest.raises(StepTransitionError):
        check_step_update(current, current + 1)


@pytest.mark.parametrize('value', [-1, 10, '1', 1.0, True, None])
def test_to_step_rejects_non_steps(value):
    with pytest.raises(StepTransitionError):
        to_step(value)


def test_next_step_stops_at_completed():
    assert next_step(Step.DEMOGRAPHICS) == Step.COMPLETED
    with pytest.raises(StepTransitionError):
        next_step(Step.COMPLETED)


def test_sequence_positions():
    assert [sequence_position(Step(s)) for s in range(10)] == [None, 1, 1, 2, 2, 3, 3, None, None, None]


def test_screens_follow_stored_order():
    assert screen_for(1, BCA).to_dict() == {
        'step': 1, 'kind': 'exposure', 'condition': 'profileBased',
        'conditionLabel': 'B = Recipient profile', 'stepIndex': 1,
    }
    assert screen_for(4, BCA).condition == Condition.CONTEXT_BASED
    assert screen_for(6, BCA).condition == Condition.FEATURE_FOCUSED
    assert screen_for(6, BCA).step_index == 3
    final = screen_for(7, BCA)
    assert final.kind == 'comparison'
    assert final.condition is None and final.step_index is None
    assert screen_for(9, BCA).kind == 'completed'


def test_expected_survey_only_on_survey_steps():
    assert expected_survey(2, BCA) == (Condition.PROFILE_BASED, 1)
    assert expected_survey(6, BCA) == (Condition.FEATURE_FOCUSED, 3)
    for step in (0, 1, 3, 7, 9):
        with pytest.raises(StepTransitionError):
            expected_survey(step, BCA)
