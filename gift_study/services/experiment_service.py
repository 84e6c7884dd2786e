"""
Experiment service: the operations behind the experiment API.

Ties together order assignment, the step state machine, the response
recorder, the recommender and the repository. Every method addresses a
persisted experiment by id; no experiment state lives in the web session.
"""

import logging
import random
import uuid
from typing import Any, Dict, List, Optional

from ..errors import NotFoundError, StepTransitionError, ValidationError
from ..repository.experiment_repository import ExperimentRepository
from .event_logger import ExperimentEventLogger
from .models import (
    TRACKING_LISTS, Demographics, FinalComparison, Persona, RecipientUpdate,
    ResponseRecord, empty_tracking_data, parse_click_event, parse_tracking_update,
)
from .order_assignment import OrderAssignment, assign_order
from .recommender import sanitize_explanation
from .response_recorder import build_response, find_replay
from .step_machine import (
    INITIAL_STEP, Step, check_step_update, next_step, screen_for, to_step,
)


logger = logging.getLogger(__name__)


def serialize_experiment(experiment: Dict[str, Any]) -> Dict[str, Any]:
    """Stored row -> API representation, including the screen for the current step."""
    persona = experiment.get('persona') or {}
    order = OrderAssignment.from_dict(experiment['experiment_order'])
    return {
        'id': experiment['id'],
        'friendName': persona.get('name'),
        'friendAge': persona.get('age'),
        'gender': persona.get('gender'),
        'priceRange': persona.get('priceRange'),
        'emotionalState': persona.get('emotionalState'),
        'product': experiment.get('product'),
        'explanations': experiment.get('explanations'),
        'experimentOrder': order.to_dict(),
        'currentStep': experiment['current_step'],
        'surveyResponses': experiment.get('survey_responses', []),
        'finalComparison': experiment.get('final_comparison'),
        'demographics': experiment.get('demographics'),
        'trackingData': experiment.get('tracking_data'),
        'startedAt': experiment.get('started_at'),
        'completedAt': experiment.get('completed_at'),
        'createdAt': experiment.get('created_at'),
        'updatedAt': experiment.get('updated_at'),
        'screen': screen_for(experiment['current_step'], order).to_dict(),
    }


class ExperimentService:
    """Experiment lifecycle operations."""

    def __init__(self, repository: ExperimentRepository, recommender: Any,
                 event_logger: Optional[ExperimentEventLogger] = None,
                 rng: Optional[random.Random] = None):
        self.repository = repository
        self.recommender = recommender
        self.event_logger = event_logger or ExperimentEventLogger(None)
        self.rng = rng

    def _load(self, experiment_id: str) -> Dict[str, Any]:
        experiment = self.repository.get_experiment(experiment_id)
        if experiment is None:
            raise NotFoundError(f"Experiment not found: {experiment_id}")
        return experiment

    def start_experiment(self, payload: Any) -> Dict[str, Any]:
        """
        Create an experiment for a persona.

        Generates the product and explanations (escaped down to <strong>
        emphasis), draws the condition order and stores everything in a
        single insert at step 0.

        Returns:
            Dict: id, experimentOrder, product, explanations, currentStep
        """
        persona = Persona.from_payload(payload)

        recommendation = self.recommender.recommend(persona)
        explanations = {k: sanitize_explanation(v) for k, v in recommendation.explanations.items()}
        order = assign_order(self.rng)

        experiment_id = str(uuid.uuid4())
        started_at = self.repository.now_str()
        self.repository.create_experiment(
            experiment_id,
            persona=persona.to_dict(),
            product=recommendation.product,
            explanations=explanations,
            experiment_order=order.to_dict(),
            tracking_data=empty_tracking_data(started_at),
            started_at=started_at,
        )
        logger.info("Experiment %s created with order %s", experiment_id, order.order_type)
        self.event_logger.log_event(experiment_id, 'start', orderType=order.order_type,
                                    product=recommendation.product.get('name'))

        return {
            'id': experiment_id,
            'experimentOrder': order.to_dict(),
            'product': recommendation.product,
            'explanations': explanations,
            'currentStep': int(INITIAL_STEP),
        }

    def get_experiment(self, experiment_id: str) -> Dict[str, Any]:
        return serialize_experiment(self._load(experiment_id))

    def list_experiments(self) -> List[Dict[str, Any]]:
        return [serialize_experiment(e) for e in self.repository.get_all_experiments()]

    def update_step(self, experiment_id: str, requested: Any) -> Dict[str, Any]:
        """Apply a client step update (n -> n+1 only)."""
        experiment = self._load(experiment_id)
        current = experiment['current_step']
        if check_step_update(current, requested):
            self.repository.advance_step(experiment_id, current, requested)
            logger.info("Experiment %s step %s -> %s", experiment_id, current, requested)
            self.event_logger.log_event(experiment_id, 'step', fromStep=current, toStep=requested)
            return {'currentStep': requested, 'changed': True}
        return {'currentStep': current, 'changed': False}

    def submit_survey(self, experiment_id: str, payload: Any) -> Dict[str, Any]:
        """
        Validate and record the survey for the open survey step, advancing past it.

        A resubmission for a position that already has a response returns the
        stored response with `duplicate` set and changes nothing.
        """
        if not isinstance(payload, dict):
            raise ValidationError("survey response must be a JSON object")
        experiment = self._load(experiment_id)
        current = experiment['current_step']
        order = OrderAssignment.from_dict(experiment['experiment_order'])

        stored = [ResponseRecord.from_dict(r) for r in experiment.get('survey_responses', [])]
        replay = find_replay(payload, current, stored)
        if replay is not None:
            logger.info("Experiment %s: survey for step %s already recorded",
                        experiment_id, replay.step_index)
            return {'response': replay.to_dict(), 'currentStep': current, 'duplicate': True}

        response = build_response(payload, current, order, self.repository.now_str())
        to = next_step(to_step(current))
        self.repository.add_survey_response(experiment_id, response, current, int(to))
        logger.info("Experiment %s: survey saved for %s (position %s)",
                    experiment_id, response.condition.value, response.step_index)
        self.event_logger.log_event(experiment_id, 'survey', condition=response.condition.value,
                                    stepIndex=response.step_index,
                                    responseTime=response.answers.response_time)
        return {'response': response.to_dict(), 'currentStep': int(to), 'duplicate': False}

    def submit_comparison(self, experiment_id: str, payload: Any) -> Dict[str, Any]:
        """Store the final comparison; the first submission advances 7 -> 8."""
        comparison = FinalComparison.from_payload(payload)
        experiment = self._load(experiment_id)
        current = to_step(experiment['current_step'])
        if current < Step.COMPARISON:
            raise StepTransitionError(f"comparison is not open at step {int(current)}")
        to = Step.DEMOGRAPHICS if current == Step.COMPARISON else current

        data = comparison.to_dict()
        data['timestamp'] = self.repository.now_str()
        self.repository.save_final_comparison(experiment_id, data, int(current), int(to))
        logger.info("Experiment %s: final comparison saved", experiment_id)
        self.event_logger.log_event(experiment_id, 'comparison', overwrite=current != Step.COMPARISON)
        return {'currentStep': int(to)}

    def submit_demographics(self, experiment_id: str, payload: Any) -> Dict[str, Any]:
        """Store demographics and complete the experiment (8 -> 9, sets completedAt once)."""
        demographics = Demographics.from_payload(payload)
        experiment = self._load(experiment_id)
        current = to_step(experiment['current_step'])
        if current < Step.DEMOGRAPHICS:
            raise StepTransitionError(f"demographics are not open at step {int(current)}")
        to = Step.COMPLETED if current == Step.DEMOGRAPHICS else current

        data = demographics.to_dict()
        data['timestamp'] = self.repository.now_str()
        self.repository.save_demographics(experiment_id, data, int(current), int(to))
        completed_at = self._load(experiment_id)['completed_at']
        logger.info("Experiment %s: demographics saved, completed at %s", experiment_id, completed_at)
        self.event_logger.log_event(experiment_id, 'demographics', overwrite=current != Step.DEMOGRAPHICS)
        return {'currentStep': int(to), 'completedAt': completed_at}

    def add_tracking_data(self, experiment_id: str, payload: Any) -> Dict[str, Any]:
        """Append telemetry lists and replace sessionDuration when given."""
        update = parse_tracking_update(payload)
        experiment = self._load(experiment_id)
        tracking = experiment.get('tracking_data') or empty_tracking_data()
        merged = self._merge_tracking(tracking, update)
        self.repository.update_tracking_data(experiment_id, merged)
        self.event_logger.log_event(experiment_id, 'tracking',
                                    **{k: len(v) for k, v in update.items() if isinstance(v, list)})
        return merged

    def log_click_event(self, experiment_id: str, payload: Any) -> Dict[str, Any]:
        event = parse_click_event(payload, self.repository.now_str())
        experiment = self._load(experiment_id)
        tracking = experiment.get('tracking_data') or empty_tracking_data()
        merged = self._merge_tracking(tracking, {'buttonClicks': [event]})
        self.repository.update_tracking_data(experiment_id, merged)
        logger.info("Experiment %s: click %s/%s", experiment_id,
                    event['event_type'], event.get('sub_event'))
        return event

    def update_recipient(self, experiment_id: str, payload: Any) -> Dict[str, Any]:
        update = RecipientUpdate.from_payload(payload)
        experiment = self._load(experiment_id)
        persona = dict(experiment.get('persona') or {})
        persona.update({'name': update.friend_name, 'age': update.friend_age,
                        'gender': update.gender})
        self.repository.update_persona(experiment_id, persona)
        logger.info("Experiment %s: recipient info updated", experiment_id)
        self.event_logger.log_event(experiment_id, 'recipient', age=update.friend_age,
                                    gender=update.gender)
        return persona

    @staticmethod
    def _merge_tracking(existing: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        merged = {name: list(existing.get(name) or []) + list(update.get(name) or [])
                  for name in TRACKING_LISTS}
        merged['sessionDuration'] = update.get('sessionDuration') or existing.get('sessionDuration')
        return merged
