import logging
import os

from flask import Flask
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from dotenv import load_dotenv

db = SQLAlchemy()
migrate = Migrate()


def create_app(config_overrides: dict | None = None) -> Flask:
    load_dotenv()

    app = Flask(__name__)
    app.config.from_object("matic.config.Config")
    if config_overrides:
        app.config.update(config_overrides)
    os.makedirs(app.config["UPLOAD_FOLDER"], exist_ok=True)

    log_level = str(app.config.get("LOG_LEVEL") or "INFO").upper()
    app.logger.setLevel(log_level)
    logging.getLogger("matic").setLevel(log_level)

    db.init_app(app)
    migrate.init_app(app, db)

    from matic.routes import bp

    app.register_blueprint(bp)

    # Ensure model metadata is registered for migrations.
    from matic import models  # noqa: F401

    @app.after_request
    def apply_security_headers(response):
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        if app.config.get("SESSION_COOKIE_SECURE"):
            response.headers.setdefault(
                "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
            )
        return response

    return app
