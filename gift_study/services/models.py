"""
Payload models for the experiment API.

Each model parses a JSON body with `from_payload()`, collecting every field
problem before raising a single ValidationError, and serializes back to the
camelCase shape stored on the experiment record with `to_dict()`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..errors import ValidationError
from .conditions import Condition


LIKERT_MIN = 1
LIKERT_MAX = 7

# Survey scales answered after each exposure
LIKERT_FIELDS = (
    'comprehension1', 'comprehension2', 'comprehension3', 'comprehension4',
    'overload1', 'overload2', 'overload3', 'overload4',
    'perceivedFit1', 'perceivedFit2', 'perceivedFit3',
    'purchaseIntent1', 'purchaseIntent2', 'purchaseIntent3',
)

# Manipulation check: which kind of explanation did you just read?
MC1_CHOICES = ('feature', 'profile', 'intent')

PERSONA_GENDERS = ('male', 'female')
DEMOGRAPHIC_GENDERS = ('male', 'female', 'other', 'prefer_not_to_say')
SHOPPING_FREQUENCIES = ('never', 'rarely', 'sometimes', 'often', 'always')
IMPORTANCE_FIELDS = (
    'priceImportance', 'qualityImportance',
    'relationshipImportance', 'relationshipIntimacy',
)
COMPARISON_CHOICE_FIELDS = (
    'mostComprehensible', 'mostOverloaded',
    'personalPreference', 'bestGiftAppropriatenessExplanation',
)

TRACKING_LISTS = ('dwellTimes', 'scrollPatterns', 'firstInteractions', 'buttonClicks')
CLICK_EVENT_TYPES = ('click_info_menu', 'click_action_menu', 'click_regenerate')
CLICK_SUB_EVENTS = ('spec', 'review', 'compare', 'wishlist', 'cart', 'share', 'purchase', 'regenerate')


class _FieldErrors:
    """Collects per-field messages while a payload is parsed."""

    def __init__(self, payload: Any, what: str):
        if not isinstance(payload, dict):
            raise ValidationError(f"{what} must be a JSON object")
        self.payload = payload
        self.what = what
        self.errors: Dict[str, str] = {}

    def integer(self, name: str, lo: int, hi: int) -> Optional[int]:
        value = self.payload.get(name)
        if value is None:
            self.errors[name] = 'required'
            return None
        if isinstance(value, bool):
            self.errors[name] = 'must be an integer'
            return None
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        if not isinstance(value, int):
            self.errors[name] = 'must be an integer'
            return None
        if value < lo or value > hi:
            self.errors[name] = f'must be between {lo} and {hi}'
            return None
        return value

    def choice(self, name: str, choices, required: bool = True) -> Optional[str]:
        value = self.payload.get(name)
        if value is None:
            if required:
                self.errors[name] = 'required'
            return None
        if value not in choices:
            self.errors[name] = f"must be one of {', '.join(choices)}"
            return None
        return value

    def condition(self, name: str, required: bool = True) -> Optional[Condition]:
        value = self.payload.get(name)
        if value is None:
            if required:
                self.errors[name] = 'required'
            return None
        try:
            return Condition.parse(value)
        except ValueError:
            self.errors[name] = 'unknown condition'
            return None

    def text(self, name: str, required: bool = True, min_len: int = 0,
             max_len: Optional[int] = None) -> Optional[str]:
        value = self.payload.get(name)
        if value is None:
            if required:
                self.errors[name] = 'required'
            return None
        if not isinstance(value, str):
            self.errors[name] = 'must be a string'
            return None
        if len(value.strip()) < min_len:
            self.errors[name] = 'required' if min_len == 1 else f'must be at least {min_len} characters'
            return None
        if max_len is not None and len(value) > max_len:
            self.errors[name] = f'must be at most {max_len} characters'
            return None
        return value

    def boolean(self, name: str) -> Optional[bool]:
        value = self.payload.get(name)
        if not isinstance(value, bool):
            self.errors[name] = 'required' if value is None else 'must be true or false'
            return None
        return value

    def string_list(self, name: str) -> Optional[List[str]]:
        value = self.payload.get(name)
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            self.errors[name] = 'must be a list of strings'
            return None
        return list(value)

    def raise_if_any(self) -> None:
        if self.errors:
            raise ValidationError(f"Invalid {self.what}", details=dict(self.errors))


@dataclass
class Persona:
    """Gift recipient described by the participant on the start form."""
    name: str
    age: int
    gender: str
    price_range: str
    emotional_state: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> 'Persona':
        f = _FieldErrors(payload, 'persona')
        name = f.text('name', min_len=1)
        age = f.integer('age', 1, 120)
        gender = f.choice('gender', PERSONA_GENDERS)
        price_range = f.text('priceRange', min_len=1)
        emotional_state = f.text('emotionalState', required=False)
        f.raise_if_any()
        return cls(name=name.strip(), age=age, gender=gender,
                   price_range=price_range, emotional_state=emotional_state)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'age': self.age,
            'gender': self.gender,
            'priceRange': self.price_range,
            'emotionalState': self.emotional_state,
        }


@dataclass
class RecipientUpdate:
    friend_name: str
    friend_age: int
    gender: str

    @classmethod
    def from_payload(cls, payload: Any) -> 'RecipientUpdate':
        f = _FieldErrors(payload, 'recipient info')
        name = f.text('friendName', min_len=1)
        age = f.integer('friendAge', 1, 120)
        gender = f.choice('gender', PERSONA_GENDERS)
        f.raise_if_any()
        return cls(friend_name=name.strip(), friend_age=age, gender=gender)


@dataclass
class SurveyAnswers:
    """Validated answers of one post-exposure survey (no tagging yet)."""
    likert: Dict[str, int]
    mc1_explanation_type: str
    response_time: int
    open_feedback: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> 'SurveyAnswers':
        f = _FieldErrors(payload, 'survey response')
        likert = {}
        for name in LIKERT_FIELDS:
            value = f.integer(name, LIKERT_MIN, LIKERT_MAX)
            if value is not None:
                likert[name] = value
        mc1 = f.choice('mc1_explanationType', MC1_CHOICES)
        response_time = f.integer('responseTime', 0, 24 * 60 * 60 * 1000)
        open_feedback = f.text('openFeedback', required=False, max_len=5000)
        f.raise_if_any()
        return cls(likert=likert, mc1_explanation_type=mc1,
                   response_time=response_time, open_feedback=open_feedback)


@dataclass
class ResponseRecord:
    """One stored survey response, tagged with its condition and position."""
    condition: Condition
    step_index: int
    answers: SurveyAnswers
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'condition': self.condition.value,
            'stepIndex': self.step_index,
            'mc1_explanationType': self.answers.mc1_explanation_type,
        }
        data.update(self.answers.likert)
        if self.answers.open_feedback is not None:
            data['openFeedback'] = self.answers.open_feedback
        data['responseTime'] = self.answers.response_time
        data['timestamp'] = self.timestamp
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResponseRecord':
        answers = SurveyAnswers(
            likert={k: data[k] for k in LIKERT_FIELDS if k in data},
            mc1_explanation_type=data.get('mc1_explanationType'),
            response_time=data.get('responseTime', 0),
            open_feedback=data.get('openFeedback'),
        )
        return cls(condition=Condition.parse(data['condition']),
                   step_index=data['stepIndex'], answers=answers,
                   timestamp=data.get('timestamp', ''))


@dataclass
class FinalComparison:
    different_info_methods: bool
    clear_differences: bool
    choices: Dict[str, Condition] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> 'FinalComparison':
        f = _FieldErrors(payload, 'final comparison')
        different = f.boolean('differentInfoMethods')
        clear = f.boolean('clearDifferences')
        choices = {}
        for name in COMPARISON_CHOICE_FIELDS:
            value = f.condition(name)
            if value is not None:
                choices[name] = value
        f.raise_if_any()
        return cls(different_info_methods=different, clear_differences=clear, choices=choices)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'differentInfoMethods': self.different_info_methods,
            'clearDifferences': self.clear_differences,
        }
        data.update({k: v.value for k, v in self.choices.items()})
        return data


@dataclass
class Demographics:
    age: int
    gender: str
    phone: str
    gift_shopping_frequency: str
    importance: Dict[str, int]
    has_used_gift_service: bool
    gift_situations: List[str]
    gift_mindset: str

    @classmethod
    def from_payload(cls, payload: Any) -> 'Demographics':
        f = _FieldErrors(payload, 'demographics')
        age = f.integer('age', 18, 100)
        gender = f.choice('gender', DEMOGRAPHIC_GENDERS)
        phone = f.text('phone', min_len=10, max_len=15)
        frequency = f.choice('giftShoppingFrequency', SHOPPING_FREQUENCIES)
        importance = {}
        for name in IMPORTANCE_FIELDS:
            value = f.integer(name, LIKERT_MIN, LIKERT_MAX)
            if value is not None:
                importance[name] = value
        used = f.boolean('hasUsedGiftService')
        situations = f.string_list('giftSituations')
        mindset = f.text('giftMindset')
        f.raise_if_any()
        return cls(age=age, gender=gender, phone=phone.strip(),
                   gift_shopping_frequency=frequency, importance=importance,
                   has_used_gift_service=used, gift_situations=situations,
                   gift_mindset=mindset)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'age': self.age,
            'gender': self.gender,
            'phone': self.phone,
            'giftShoppingFrequency': self.gift_shopping_frequency,
        }
        data.update(self.importance)
        data.update({
            'hasUsedGiftService': self.has_used_gift_service,
            'giftSituations': self.gift_situations,
            'giftMindset': self.gift_mindset,
        })
        return data


def empty_tracking_data(start_time: str = '') -> Dict[str, Any]:
    return {
        'dwellTimes': [],
        'scrollPatterns': [],
        'firstInteractions': [],
        'buttonClicks': [],
        'sessionDuration': {'startTime': start_time, 'endTime': None, 'totalDuration': None},
    }


def parse_tracking_update(payload: Any) -> Dict[str, Any]:
    """Validate a telemetry batch. Lists are appended later; sessionDuration replaces."""
    if not isinstance(payload, dict):
        raise ValidationError("trackingData must be a JSON object")
    errors: Dict[str, str] = {}
    update: Dict[str, Any] = {}
    for name in TRACKING_LISTS:
        if name not in payload:
            continue
        entries = payload[name]
        if not isinstance(entries, list) or not all(isinstance(e, dict) for e in entries):
            errors[name] = 'must be a list of objects'
            continue
        bad = [e for e in entries if 'condition' in e and not _is_condition(e['condition'])]
        if bad:
            errors[name] = 'contains an unknown condition'
            continue
        update[name] = entries
    if 'sessionDuration' in payload:
        if isinstance(payload['sessionDuration'], dict):
            update['sessionDuration'] = payload['sessionDuration']
        else:
            errors['sessionDuration'] = 'must be an object'
    if errors:
        raise ValidationError("Invalid tracking data", details=errors)
    return update


def parse_click_event(payload: Any, timestamp: str) -> Dict[str, Any]:
    f = _FieldErrors(payload, 'click event')
    condition = f.condition('condition')
    event_type = f.choice('event_type', CLICK_EVENT_TYPES)
    sub_event = f.choice('sub_event', CLICK_SUB_EVENTS, required=False)
    f.raise_if_any()
    event = {'condition': condition.value, 'event_type': event_type, 'timestamp': timestamp}
    if sub_event is not None:
        event['sub_event'] = sub_event
    coordinates = payload.get('coordinates')
    if isinstance(coordinates, dict):
        event['coordinates'] = coordinates
    return event


def _is_condition(value: Any) -> bool:
    try:
        Condition.parse(value)
        return True
    except ValueError:
        return False
