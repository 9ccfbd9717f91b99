# smartaudit/models/__init__.py
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

def init_app(app):
    app.config.setdefault("SQLALCHEMY_TRACK_MODIFICATIONS", False)
    db.init_app(app)
    migrate.init_app(app, db)

# 👇 Imports register the models on db.metadata
from .session import AuditSession  # noqa
from .result import AuditResult    # noqa
from .credits import UserCredits, CreditTransaction  # noqa

__all__ = ["db", "migrate", "AuditSession", "AuditResult", "UserCredits", "CreditTransaction"]
