from flask import Flask
from flasgger import Swagger
from prometheus_flask_exporter import PrometheusMetrics
from flask_cors import CORS
import os

from .logging_setup import setup_logging
from .routes import health, audit_routes, credit_routes
from .config import DevelopmentConfig, ProductionConfig, TestingConfig

__version__ = "1.0.0"


def create_app(config_name: str = "development", ledger=None):
    app = Flask(__name__)

    config_map = {
        "development": DevelopmentConfig,
        "production": ProductionConfig,
        "testing": TestingConfig,
    }
    app.config.from_object(config_map.get(config_name.lower(), DevelopmentConfig))

    setup_logging(app)

    # CORS_ORIGINS unset or '*' -> any origin; otherwise a comma separated allow-list
    cors_origin = os.getenv("CORS_ORIGINS", "*").strip()
    cors_common_kwargs = dict(
        supports_credentials=False,
        methods=["GET", "POST", "OPTIONS", "HEAD"],
        allow_headers=[
            "Content-Type",
            "Authorization",
            "X-Requested-With",
            "X-Request-ID",
            "X-Timestamp",
            "X-Client-Version",
            "Accept",
            "Origin",
            "User-Agent",
            "Cache-Control",
        ],
    )
    if cors_origin == "*" or cors_origin == "":
        CORS(app, resources={r"/*": {"origins": "*"}}, **cors_common_kwargs)
    else:
        origins_list = [o.strip() for o in cors_origin.split(",") if o.strip()]
        CORS(app, resources={r"/*": {"origins": origins_list}}, **cors_common_kwargs)

    # models need the app (and its config) before they bind
    from .models import init_app as init_models
    init_models(app)

    from .services.credits import SqlCreditLedger
    from .services.orchestrator import AuditOrchestrator
    from .services.session_store import SqlSessionStore

    app.extensions["credit_ledger"] = ledger or SqlCreditLedger()
    app.extensions["audit_orchestrator"] = AuditOrchestrator(
        SqlSessionStore(),
        ledger=app.extensions["credit_ledger"],
        max_code_bytes=app.config["MAX_CONTRACT_BYTES"],
    )

    # Swagger
    swagger_template = {
        "swagger": "2.0",
        "info": {
            "title": "SmartAudit API",
            "description": "Smart contract audit sessions, credit estimates and findings.",
            "version": __version__,
        },
        "basePath": "/",
        "schemes": ["https"],
    }
    swagger_config = {
        "headers": [],
        "specs": [
            {
                "endpoint": "apispec_1",
                "route": "/apispec_1.json",
                "rule_filter": lambda rule: True,
                "model_filter": lambda tag: True,
            }
        ],
        "static_url_path": "/flasgger_static",
        "swagger_ui": True,
        "specs_route": "/apidocs/",
    }
    Swagger(app, template=swagger_template, config=swagger_config)

    # Blueprints
    app.register_blueprint(health.bp)
    app.register_blueprint(audit_routes.bp, url_prefix="/api/audit")
    app.register_blueprint(credit_routes.bp, url_prefix="/api/credits")

    # Metrics (the exporter refuses a second registration in one process)
    if not app.config.get("TESTING"):
        metrics = PrometheusMetrics(app, path="/metrics")
        metrics.info("app_info", "SmartAudit service", version=__version__)

    return app
