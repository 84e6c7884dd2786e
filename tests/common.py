from typing import Dict, List, Optional, Tuple


LIKERT_NAMES = [
    'comprehension1', 'comprehension2', 'comprehension3', 'comprehension4',
    'overload1', 'overload2', 'overload3', 'overload4',
    'perceivedFit1', 'perceivedFit2', 'perceivedFit3',
    'purchaseIntent1', 'purchaseIntent2', 'purchaseIntent3',
]


def make_persona_payload(name: str = 'Minji') -> Dict:
    """Create a deterministic persona payload for /api/experiment/start."""
    return {
        'name': name,
        'age': 29,
        'gender': 'female',
        'priceRange': '30000-50000',
        'emotionalState': 'stressed after a long project',
    }


def make_survey_payload(condition: Optional[str] = None, step_index: Optional[int] = None,
                        value: int = 5, response_time: int = 12000) -> Dict:
    """Create a complete survey payload. Tags are only included when given."""
    payload = {name: value for name in LIKERT_NAMES}
    payload.update({
        'mc1_explanationType': 'feature',
        'responseTime': response_time,
        'openFeedback': 'Test: automated scenario',
    })
    if condition is not None:
        payload['condition'] = condition
    if step_index is not None:
        payload['stepIndex'] = step_index
    return payload


def make_comparison_payload(preferred: str = 'contextBased') -> Dict:
    return {
        'differentInfoMethods': True,
        'clearDifferences': True,
        'mostComprehensible': 'featureFocused',
        'mostOverloaded': 'profileBased',
        'personalPreference': preferred,
        'bestGiftAppropriatenessExplanation': preferred,
    }


def make_demographics_payload(age: int = 31, mindset: str = 'Thoughtfulness') -> Dict:
    return {
        'age': age,
        'gender': 'female',
        'phone': '01012345678',
        'giftShoppingFrequency': 'sometimes',
        'priceImportance': 4,
        'qualityImportance': 6,
        'relationshipImportance': 7,
        'relationshipIntimacy': 5,
        'hasUsedGiftService': True,
        'giftSituations': ['birthday', 'congratulations'],
        'giftMindset': mindset,
    }


def percentiles(samples: List[float], ps: Tuple[int, ...] = (50, 90, 95, 99)) -> Dict[int, float]:
    if not samples:
        return {p: 0.0 for p in ps}
    xs = sorted(samples)
    out = {}
    for p in ps:
        k = (len(xs) - 1) * (p / 100.0)
        f = int(k)
        c = min(f + 1, len(xs) - 1)
        if f == c:
            out[p] = xs[f]
        else:
            d0 = xs[f] * (c - k)
            d1 = xs[c] * (k - f)
            out[p] = d0 + d1
    return out
