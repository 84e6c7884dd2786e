"""
Gift Explanation Study - Main Application

This is the main Flask application that wires together all components of the
within-subject explanation experiment.

Architecture:
- services/: Business logic (order assignment, step machine, recorder, recommender)
- repository/: Data access layer (ExperimentRepository)
- routes/: HTTP endpoints (main pages, experiment JSON API)
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Any, Mapping, Optional

from flask import Flask

from .config import Config
from .repository.experiment_repository import ExperimentRepository
from .routes.experiment_api import experiment_api_bp
from .routes.main import main_bp
from .services.event_logger import ExperimentEventLogger
from .services.experiment_service import ExperimentService
from .services.recommender import build_recommender


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, app.config['LOG_LEVEL'], logging.INFO)
    formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s: %(message)s')

    package_logger = logging.getLogger('gift_study')
    package_logger.setLevel(level)
    if not package_logger.handlers:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        package_logger.addHandler(stream_handler)

        log_file = app.config.get('LOG_FILE')
        if log_file:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            file_handler = RotatingFileHandler(log_file, maxBytes=1024 * 1024, backupCount=10)
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
            ))
            package_logger.addHandler(file_handler)


def create_app(overrides: Optional[Mapping[str, Any]] = None, service: Optional[ExperimentService] = None):
    """Application factory pattern

    Args:
        overrides: Config values that replace the environment-derived ones
        service: Prebuilt ExperimentService (tests inject their own)
    """
    app = Flask(__name__,
                template_folder='templates',
                static_folder='static')
    app.config.from_mapping(Config().as_dict())
    if overrides:
        app.config.from_mapping(overrides)
    app.secret_key = app.config['SECRET_KEY']

    _configure_logging(app)

    if service is None:
        repository = ExperimentRepository(app.config['DATABASE_PATH'],
                                          timezone=app.config['TIMEZONE'])
        service = ExperimentService(
            repository,
            build_recommender(app.config),
            event_logger=ExperimentEventLogger(app.config['EVENT_LOG_DIR']),
        )
    app.extensions['experiment_service'] = service

    # Register blueprints
    app.register_blueprint(main_bp)
    app.register_blueprint(experiment_api_bp)

    logging.getLogger(__name__).info(
        "Gift study app ready (db=%s, recommender=%s)",
        app.config['DATABASE_PATH'], app.config['RECOMMENDER_BACKEND'])
    return app
