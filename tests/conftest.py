import pytest

from gift_study.app import create_app
from gift_study.repository.experiment_repository import ExperimentRepository
from gift_study.services.event_logger import ExperimentEventLogger
from gift_study.services.experiment_service import ExperimentService
from gift_study.services.recommender import StaticRecommender

from common import make_comparison_payload, make_demographics_payload, make_survey_payload


class FixedOrder:
    """Stands in for the random source: always picks the named order (e.g. 'BCA')."""

    def __init__(self, order_type):
        self.order_type = order_type

    def choice(self, orders):
        return next(o for o in orders if o.order_type == self.order_type)


@pytest.fixture
def test_config(tmp_path):
    return {
        'TESTING': True,
        'SECRET_KEY': 'test',
        'DATABASE_PATH': str(tmp_path / 'experiments.db'),
        'EVENT_LOG_DIR': str(tmp_path / 'events'),
        'LOG_FILE': '',
        'RECOMMENDER_BACKEND': 'static',
    }


@pytest.fixture
def app(test_config):
    return create_app(test_config)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_app(test_config):
    """Build an app around a service with a fixed order and/or a custom recommender."""
    def _make(order_type=None, recommender=None):
        repository = ExperimentRepository(test_config['DATABASE_PATH'])
        service = ExperimentService(
            repository,
            recommender or StaticRecommender(),
            event_logger=ExperimentEventLogger(test_config['EVENT_LOG_DIR']),
            rng=FixedOrder(order_type) if order_type else None,
        )
        return create_app(test_config, service=service)
    return _make


@pytest.fixture
def walk_to_step():
    """Drive an experiment forward through the API until it reaches `target`."""
    def _walk(client, experiment_id, target):
        api = f'/api/experiment/{experiment_id}'
        current = client.get(api).get_json()['currentStep']
        while current < target:
            if current in (0, 1, 3, 5):
                r = client.patch(api + '/step', json={'step': current + 1})
            elif current in (2, 4, 6):
                r = client.post(api + '/survey', json=make_survey_payload())
            elif current == 7:
                r = client.post(api + '/comparison', json=make_comparison_payload())
            else:
                r = client.post(api + '/demographics', json=make_demographics_payload())
            assert r.status_code == 200, r.get_json()
            current = r.get_json()['currentStep']
        return current
    return _walk
