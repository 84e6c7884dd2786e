"""
Main routes for the gift explanation study.
Handles the start page, the experiment screens and the admin data view.
"""

from flask import Blueprint, abort, current_app, render_template, session

from ..errors import NotFoundError
from ..services.conditions import CONDITIONS
from ..services.models import (
    CLICK_SUB_EVENTS, COMPARISON_CHOICE_FIELDS, DEMOGRAPHIC_GENDERS, IMPORTANCE_FIELDS,
    LIKERT_FIELDS, LIKERT_MAX, LIKERT_MIN, MC1_CHOICES, PERSONA_GENDERS, SHOPPING_FREQUENCIES,
)

main_bp = Blueprint('main', __name__)

# Likert items grouped by scale, in display order
LIKERT_GROUPS = [
    ('Comprehension', [f for f in LIKERT_FIELDS if f.startswith('comprehension')]),
    ('Information overload', [f for f in LIKERT_FIELDS if f.startswith('overload')]),
    ('Perceived fit', [f for f in LIKERT_FIELDS if f.startswith('perceivedFit')]),
    ('Purchase intent', [f for f in LIKERT_FIELDS if f.startswith('purchaseIntent')]),
]


@main_bp.route('/')
def index():
    """Landing page with the recipient persona form"""
    resume_id = None
    experiment_id = session.get('experiment_id')
    if experiment_id:
        try:
            experiment = current_app.extensions['experiment_service'].get_experiment(experiment_id)
            if not experiment['completedAt']:
                resume_id = experiment_id
        except NotFoundError:
            session.pop('experiment_id', None)
    return render_template('index.html', genders=PERSONA_GENDERS, resume_id=resume_id)


@main_bp.route('/experiment/<experiment_id>')
def experiment_screen(experiment_id):
    """Render the screen for the experiment's persisted current step"""
    try:
        experiment = current_app.extensions['experiment_service'].get_experiment(experiment_id)
    except NotFoundError:
        abort(404)
    session['experiment_id'] = experiment_id

    return render_template('experiment.html',
                           experiment=experiment,
                           screen=experiment['screen'],
                           conditions=CONDITIONS,
                           likert_groups=LIKERT_GROUPS,
                           likert_range=range(LIKERT_MIN, LIKERT_MAX + 1),
                           mc1_choices=MC1_CHOICES,
                           info_menu=CLICK_SUB_EVENTS[:3],
                           action_menu=CLICK_SUB_EVENTS[3:7],
                           comparison_fields=COMPARISON_CHOICE_FIELDS,
                           demographic_genders=DEMOGRAPHIC_GENDERS,
                           shopping_frequencies=SHOPPING_FREQUENCIES,
                           importance_fields=IMPORTANCE_FIELDS)


@main_bp.route('/admin/data')
def admin_data():
    """Admin data view"""
    experiments = current_app.extensions['experiment_service'].list_experiments()
    return render_template('admin_data.html', experiments=experiments)
