"""
Experiment JSON API.

Every endpoint addresses an experiment by id. Errors are answered as
`{"success": false, "error": ...}` with the status carried by the exception;
the client keeps the participant on the current step and lets them retry.
"""

import logging

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from ..errors import ExperimentError, ValidationError
from ..services.experiment_service import ExperimentService

logger = logging.getLogger(__name__)

experiment_api_bp = Blueprint('experiment_api', __name__, url_prefix='/api')


def _service() -> ExperimentService:
    return current_app.extensions['experiment_service']


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        raise ValidationError("Request body must be JSON")
    return data


@experiment_api_bp.errorhandler(ExperimentError)
def handle_experiment_error(e: ExperimentError):
    if e.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.path, e.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.path, e.status_code, e.message)
    return jsonify(e.to_dict()), e.status_code


@experiment_api_bp.errorhandler(Exception)
def handle_unexpected_error(e: Exception):
    if isinstance(e, HTTPException):
        return jsonify({'success': False, 'error': e.description}), e.code
    logger.exception("Unexpected error on %s %s", request.method, request.path)
    return jsonify({'success': False, 'error': 'Server error'}), 500


@experiment_api_bp.route('/experiment/start', methods=['POST'])
def start_experiment():
    """Create an experiment for the submitted persona"""
    result = _service().start_experiment(_json_body())
    return jsonify(result)


@experiment_api_bp.route('/experiment/<experiment_id>', methods=['GET'])
def get_experiment(experiment_id):
    """Full experiment record, used by the client to resume"""
    return jsonify(_service().get_experiment(experiment_id))


@experiment_api_bp.route('/experiments', methods=['GET'])
def list_experiments():
    """All experiment records (analysis)"""
    return jsonify(_service().list_experiments())


@experiment_api_bp.route('/experiment/<experiment_id>/step', methods=['PATCH'])
def update_step(experiment_id):
    data = _json_body()
    if 'step' not in data:
        raise ValidationError("Missing field: step")
    result = _service().update_step(experiment_id, data['step'])
    return jsonify({'success': True, 'currentStep': result['currentStep']})


@experiment_api_bp.route('/experiment/<experiment_id>/survey', methods=['POST'])
def submit_survey(experiment_id):
    result = _service().submit_survey(experiment_id, _json_body())
    return jsonify({'success': True, **result})


@experiment_api_bp.route('/experiment/<experiment_id>/comparison', methods=['POST'])
def submit_comparison(experiment_id):
    result = _service().submit_comparison(experiment_id, _json_body())
    return jsonify({'success': True, **result})


@experiment_api_bp.route('/experiment/<experiment_id>/demographics', methods=['POST'])
def submit_demographics(experiment_id):
    result = _service().submit_demographics(experiment_id, _json_body())
    return jsonify({'success': True, **result})


@experiment_api_bp.route('/experiment/<experiment_id>/tracking', methods=['POST'])
def add_tracking_data(experiment_id):
    data = _json_body()
    if 'trackingData' not in data:
        raise ValidationError("Missing field: trackingData")
    _service().add_tracking_data(experiment_id, data['trackingData'])
    return jsonify({'success': True})


@experiment_api_bp.route('/experiment/<experiment_id>/click-event', methods=['POST'])
def log_click_event(experiment_id):
    event = _service().log_click_event(experiment_id, _json_body())
    return jsonify({'success': True, 'event': event})


@experiment_api_bp.route('/experiment/<experiment_id>/recipient', methods=['PATCH'])
def update_recipient(experiment_id):
    _service().update_recipient(experiment_id, _json_body())
    return jsonify({'success': True})
