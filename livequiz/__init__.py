"""
Application Factory
Creates and configures the Flask application
"""
import logging

from flask import Flask

from livequiz.config import get_config
from livequiz.extensions import db, socketio
from livequiz.utils.logging_config import configure_logging


def create_app(config_name=None):
    """
    Application factory pattern
    Creates and configures Flask app
    """
    app = Flask(__name__)

    # Load configuration
    if config_name:
        from livequiz.config import config
        app.config.from_object(config[config_name])
    else:
        app.config.from_object(get_config())

    logger = configure_logging(getattr(logging, str(app.config['LOG_LEVEL']).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    socketio.init_app(
        app,
        cors_allowed_origins=app.config['SOCKETIO_CORS_ALLOWED_ORIGINS'],
        async_mode=app.config['SOCKETIO_ASYNC_MODE']
    )

    # Register blueprints
    from livequiz.routes import teacher_bp, player_bp

    # Teacher routes (prefixed with /teacher)
    app.register_blueprint(teacher_bp, url_prefix='/teacher')

    # Player routes (prefixed with /play)
    app.register_blueprint(player_bp, url_prefix='/play')

    # Register Socket.IO events
    from livequiz.sockets import register_socket_events, emit_row_change
    with app.app_context():
        register_socket_events()

    # Forward every stored row change to the session room
    from livequiz.services.notifications import feed
    feed.set_emitter(emit_row_change)

    # Create database tables
    with app.app_context():
        db.create_all()
        logger.info('Database tables created/verified')

        if app.config.get('SEED_BADGES'):
            from livequiz.services.badge_service import seed_badges
            seed_badges()

    return app
