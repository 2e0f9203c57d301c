# backend/storefront/__init__.py
from flask import Flask, request
from werkzeug.middleware.proxy_fix import ProxyFix

from .config import Config
from .errors import ConfigurationError
from .extensions import init_extensions


def _check_required_settings(app: Flask) -> None:
    if app.config.get("TESTING"):
        return
    missing = [name for name in app.config["REQUIRED_SETTINGS"] if not app.config.get(name)]
    if missing:
        # POSTGRES_URL is the env var behind SQLALCHEMY_DATABASE_URI
        labels = ["POSTGRES_URL" if m == "SQLALCHEMY_DATABASE_URI" else m for m in missing]
        raise ConfigurationError(f"Missing required settings: {', '.join(labels)}")


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    _check_required_settings(app)

    proxies = app.config.get("TRUSTED_PROXY_COUNT", 0)
    if proxies:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=proxies, x_proto=proxies)

    init_extensions(app)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.products import products_bp
    from .routes.cart import cart_bp
    from .routes.orders import orders_bp
    from .routes.payments import payments_bp
    from .routes.distributor import distributor_bp
    from .routes.admin import admin_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(cart_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(distributor_bp)
    app.register_blueprint(admin_bp)

    from .middleware import csrf_protect
    app.before_request(csrf_protect)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config["CORS_ALLOWED_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type, X-CSRF-Token, X-Cart-Session"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    from .cli import register_commands
    register_commands(app)

    return app
