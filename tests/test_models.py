import pytest

from gift_study.errors import StepTransitionError, ValidationError
from gift_study.services.conditions import Condition
from gift_study.services.models import (
    LIKERT_FIELDS, Demographics, FinalComparison, Persona, ResponseRecord, SurveyAnswers,
    parse_click_event, parse_tracking_update,
)
from gift_study.services.order_assignment import OrderAssignment
from gift_study.services.response_recorder import build_response, find_replay

from common import make_comparison_payload, make_demographics_payload, make_persona_payload, make_survey_payload


BCA = OrderAssignment.from_dict({'sequence': ['profileBased', 'contextBased', 'featureFocused']})


@pytest.mark.parametrize('field', LIKERT_FIELDS)
def test_survey_missing_any_likert_field_is_rejected(field):
    payload = make_survey_payload()
    del payload[field]
    with pytest.raises(ValidationError) as exc:
        SurveyAnswers.from_payload(payload)
    assert exc.value.details == {field: 'required'}


@pytest.mark.parametrize('value', [0, 8, -3, '5', True, 4.5])
def test_survey_likert_out_of_range_or_wrong_type(value):
    payload = make_survey_payload()
    payload['overload2'] = value
    with pytest.raises(ValidationError) as exc:
        SurveyAnswers.from_payload(payload)
    assert 'overload2' in exc.value.details


@pytest.mark.parametrize('value', [1, 7])
def test_survey_likert_bounds_are_accepted_verbatim(value):
    answers = SurveyAnswers.from_payload(make_survey_payload(value=value))
    assert set(answers.likert.values()) == {value}
    assert len(answers.likert) == len(LIKERT_FIELDS)


def test_survey_collects_every_error():
    payload = make_survey_payload()
    payload['mc1_explanationType'] = 'price'
    del payload['responseTime']
    payload['openFeedback'] = 'x' * 5001
    with pytest.raises(ValidationError) as exc:
        SurveyAnswers.from_payload(payload)
    assert set(exc.value.details) == {'mc1_explanationType', 'responseTime', 'openFeedback'}


def test_open_feedback_is_optional():
    payload = make_survey_payload()
    del payload['openFeedback']
    assert SurveyAnswers.from_payload(payload).open_feedback is None


def test_persona_parsing():
    persona = Persona.from_payload(make_persona_payload())
    assert persona.to_dict()['priceRange'] == '30000-50000'

    payload = make_persona_payload()
    del payload['emotionalState']
    assert Persona.from_payload(payload).emotional_state is None

    with pytest.raises(ValidationError) as exc:
        Persona.from_payload({'name': '  ', 'age': 0, 'gender': 'other', 'priceRange': 'any'})
    assert set(exc.value.details) == {'name', 'age', 'gender'}


def test_persona_requires_object():
    with pytest.raises(ValidationError):
        Persona.from_payload(['Minji', 29])


def test_final_comparison():
    comparison = FinalComparison.from_payload(make_comparison_payload())
    assert comparison.choices['personalPreference'] is Condition.CONTEXT_BASED
    assert comparison.to_dict()['mostOverloaded'] == 'profileBased'

    payload = make_comparison_payload()
    payload['mostComprehensible'] = 'D'
    payload['clearDifferences'] = 'yes'
    with pytest.raises(ValidationError) as exc:
        FinalComparison.from_payload(payload)
    assert set(exc.value.details) == {'mostComprehensible', 'clearDifferences'}


@pytest.mark.parametrize('phone', ['012345678', '0123456789012345'])
def test_demographics_phone_length(phone):
    payload = make_demographics_payload()
    payload['phone'] = phone
    with pytest.raises(ValidationError) as exc:
        Demographics.from_payload(payload)
    assert 'phone' in exc.value.details


def test_demographics_accepts_empty_gift_situations():
    payload = make_demographics_payload()
    payload['giftSituations'] = []
    data = Demographics.from_payload(payload).to_dict()
    assert data['giftSituations'] == []
    assert data['relationshipImportance'] == 7


@pytest.mark.parametrize('field,value', [
    ('age', 17), ('age', 101), ('gender', 'unknown'), ('giftShoppingFrequency', 'daily'),
    ('qualityImportance', 0), ('hasUsedGiftService', 'no'), ('giftSituations', 'birthday'),
])
def test_demographics_field_constraints(field, value):
    payload = make_demographics_payload()
    payload[field] = value
    with pytest.raises(ValidationError) as exc:
        Demographics.from_payload(payload)
    assert field in exc.value.details


def test_build_response_derives_tags_from_step():
    record = build_response(make_survey_payload(), 4, BCA, '2024-09-17T10:00:00+09:00')
    assert record.condition is Condition.CONTEXT_BASED
    assert record.step_index == 2
    data = record.to_dict()
    assert data['condition'] == 'contextBased'
    assert data['stepIndex'] == 2
    assert data['comprehension1'] == 5


def test_build_response_accepts_agreeing_client_tags():
    record = build_response(make_survey_payload('featureFocused', 3), 6, BCA, 't')
    assert record.condition is Condition.FEATURE_FOCUSED


@pytest.mark.parametrize('condition,step_index', [
    ('featureFocused', None),
    (None, 1),
    ('contextBased', 3),
])
def test_build_response_rejects_disagreeing_client_tags(condition, step_index):
    with pytest.raises(ValidationError):
        build_response(make_survey_payload(condition, step_index), 4, BCA, 't')


def test_build_response_requires_survey_step():
    with pytest.raises(StepTransitionError):
        build_response(make_survey_payload(), 3, BCA, 't')


def test_find_replay():
    stored = [build_response(make_survey_payload(), 2, BCA, 't')]
    stored = [ResponseRecord.from_dict(r.to_dict()) for r in stored]

    assert find_replay(make_survey_payload('profileBased', 1), 3, stored).step_index == 1
    assert find_replay(make_survey_payload(None, 1), 3, stored) is not None
    assert find_replay(make_survey_payload('contextBased', 2), 3, stored) is None
    assert find_replay(make_survey_payload(), 3, stored) is None
    with pytest.raises(ValidationError):
        find_replay(make_survey_payload('featureFocused', 1), 3, stored)


@pytest.mark.parametrize('current', [4, 5, 6, 9])
def test_answered_index_is_not_a_replay_past_the_next_exposure(current):
    stored = [ResponseRecord.from_dict(build_response(make_survey_payload(), 2, BCA, 't').to_dict())]
    assert find_replay(make_survey_payload('profileBased', 1), current, stored) is None


def test_tracking_update_validation():
    update = parse_tracking_update({
        'dwellTimes': [{'condition': 'featureFocused', 'duration': 1200}],
        'sessionDuration': {'startTime': 'a', 'endTime': 'b', 'totalDuration': 10},
    })
    assert update['dwellTimes'][0]['duration'] == 1200
    assert 'scrollPatterns' not in update

    with pytest.raises(ValidationError) as exc:
        parse_tracking_update({'dwellTimes': [{'condition': 'D'}], 'buttonClicks': 'x'})
    assert set(exc.value.details) == {'dwellTimes', 'buttonClicks'}


def test_click_event_parsing():
    event = parse_click_event({'condition': 'profileBased', 'event_type': 'click_info_menu',
                               'sub_event': 'review', 'coordinates': {'x': 1, 'y': 2}}, 'ts')
    assert event == {'condition': 'profileBased', 'event_type': 'click_info_menu',
                     'timestamp': 'ts', 'sub_event': 'review', 'coordinates': {'x': 1, 'y': 2}}

    with pytest.raises(ValidationError):
        parse_click_event({'condition': 'profileBased', 'event_type': 'scroll'}, 'ts')
