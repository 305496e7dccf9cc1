from flask import Flask, g, request
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from datetime import timedelta
from typing import Optional, Dict, Any

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    from .config.settings import load_settings
    app.config.update(load_settings())

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)
    app.config['JWT_ACCESS_TOKEN_EXPIRES'] = timedelta(hours=int(app.config['JWT_ACCESS_TOKEN_EXPIRES_HOURS']))
    app.config['MAX_CONTENT_LENGTH'] = int(app.config['MAX_UPLOAD_MB']) * 1024 * 1024

    from .utils.log import configure_logging
    configure_logging(app)

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)

    from .routes.iam import iam_bp
    from .routes.data_permissions import dp_bp
    from .routes.bases import bases_bp
    from .routes.goods import goods_bp
    from .routes.categories import category_bp
    from .routes.goods_settings import gls_bp
    from .routes.locations import loc_bp
    from .routes.personnel import staff_bp
    from .routes.suppliers import sup_bp
    from .routes.purchase_orders import po_bp
    from .routes.arrivals import arr_bp
    from .routes.inventory import inv_bp
    from .routes.transfers import transfer_bp
    from .routes.stock_outs import so_bp
    from .routes.points import point_bp
    from .routes.point_goods import pg_bp
    from .routes.point_orders import pto_bp
    from .routes.point_visits import visit_bp
    from .routes.sales import sales_bp
    from .routes.currency_rates import fx_bp
    from .routes.global_settings import settings_bp
    from .routes.translations import i18n_bp
    from .routes.reports import rpt_bp
    app.register_blueprint(iam_bp, url_prefix='/iam')
    app.register_blueprint(dp_bp, url_prefix='/iam')
    app.register_blueprint(bases_bp, url_prefix='/bases')
    app.register_blueprint(goods_bp, url_prefix='/goods')
    app.register_blueprint(category_bp, url_prefix='/categories')
    # base-owned resources live under /bases/<base_id>/...
    for bp in (gls_bp, loc_bp, staff_bp, sup_bp, po_bp, arr_bp, inv_bp, transfer_bp, so_bp, point_bp, pg_bp, pto_bp,
               visit_bp, sales_bp):
        app.register_blueprint(bp, url_prefix='/bases')
    app.register_blueprint(fx_bp, url_prefix='/settings')
    app.register_blueprint(settings_bp, url_prefix='/settings')
    app.register_blueprint(i18n_bp, url_prefix='/i18n')
    app.register_blueprint(rpt_bp, url_prefix='/reports')

    from .services.translations import resolve_request_language
    from .services.storage import get_storage

    @app.before_request
    def _detect_language():
        g.language = resolve_request_language(request.headers, app.config['DEFAULT_LANGUAGE'])

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    @app.route('/uploads/<path:filename>')
    def uploaded_file(filename: str):
        return get_storage().send(filename)

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if SessionLocal is not None:
            SessionLocal().rollback()
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                }
            }
            return payload, e.code
        if isinstance(e, IntegrityError):
            app.logger.warning('Integrity error: %s', e.orig)
            return {
                'error': {
                    'status': 409,
                    'title': 'Conflict',
                    'detail': 'Record conflicts with existing data'
                }
            }, 409
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Unexpected error'
            }
        }, 500

    # OpenAPI spec route (minimal)
    from .openapi import build_openapi_spec

    @app.route('/openapi.json')
    def openapi_spec():
        return build_openapi_spec()

    @app.route('/docs')
    def docs_index():
        # Lightweight HTML referencing Redoc CDN (no local install) for quick browsing
        return (
            "<!DOCTYPE html><html><head><title>Milicard API Docs</title>"
            "<link rel=\"stylesheet\" href=\"https://cdn.jsdelivr.net/npm/redoc@next/bundles/redoc.standalone.css\" />"
            "</head><body><redoc spec-url='/openapi.json'></redoc>"
            "<script src='https://cdn.jsdelivr.net/npm/redoc@next/bundles/redoc.standalone.js'></script>"
            "</body></html>"
        )

    return app


def get_db():
    return SessionLocal()
