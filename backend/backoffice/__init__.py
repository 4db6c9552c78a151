from flask import Flask, current_app
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import logging

from backoffice.config.settings import load_settings

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def _build_engine(db_url: str):
    if db_url.endswith(':memory:'):
        # one connection shared by every session, otherwise each would see its own empty database
        return create_engine(db_url, future=True, connect_args={'check_same_thread': False}, poolclass=StaticPool)
    return create_engine(db_url, future=True, pool_pre_ping=True)


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)
    app.config.update(load_settings())
    if config:
        app.config.update(config)

    logging.getLogger('backoffice').setLevel(app.config['LOG_LEVEL'])

    db_engine = _build_engine(app.config['DATABASE_URL'])
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)
    _register_jwt_callbacks()

    from backoffice.services.notifier import build_dispatcher
    app.extensions['notifier'] = build_dispatcher(app.config)

    from .routes.auth import auth_bp
    from .routes.tickets import tickets_bp
    from .routes.ticket_costs import costs_bp
    from .routes.categories import categories_bp
    from .routes.technicians import technicians_bp
    from .routes.users import users_bp
    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(tickets_bp, url_prefix='/tickets')
    app.register_blueprint(costs_bp, url_prefix='/ticket-costs')
    app.register_blueprint(categories_bp, url_prefix='/categories')
    app.register_blueprint(technicians_bp, url_prefix='/technicians')
    app.register_blueprint(users_bp, url_prefix='/users')

    @app.get('/healthz')
    def health():
        return {'status': 'ok'}

    # Every error leaves as {"error": message, "status": code}
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, HTTPException):
            return {'error': e.description, 'status': e.code}, e.code
        app.logger.exception('Unhandled exception on %s', getattr(e, '__class__', type(e)).__name__)
        try:
            get_db().rollback()
        except Exception:
            app.logger.warning('Rollback after unhandled exception failed', exc_info=True)
        return {'error': 'Unexpected error', 'status': 500}, 500

    return app


def _register_jwt_callbacks():
    @jwt.unauthorized_loader
    def _missing_token(reason):
        return {'error': reason, 'status': 401}, 401

    @jwt.invalid_token_loader
    def _invalid_token(reason):
        return {'error': reason, 'status': 401}, 401

    @jwt.expired_token_loader
    def _expired_token(header, payload):
        return {'error': 'Token has expired', 'status': 401}, 401


def get_db():
    return SessionLocal()


def get_notifier():
    """Outbox used by request handlers; tests swap it for a recorder."""
    return current_app.extensions['notifier']
