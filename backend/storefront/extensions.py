# Overview: Extension instances (database, migrations) and per-app in-memory stores.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()


def init_extensions(app) -> None:
    """
    Bind extensions to an app.

    The query cache and rate limiter are stored in app.extensions rather than
    at module level so every app instance (and every test) starts empty.
    """
    from .middleware import init_rate_limiter
    from .services.cache_service import init_app as init_query_cache

    db.init_app(app)
    migrate.init_app(app, db)
    init_query_cache(app)
    init_rate_limiter(app)
