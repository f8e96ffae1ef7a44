import logging

from flask import Flask
from dotenv import load_dotenv

from app.chirp.auth import load_session_context, store_session_cookies
from app.chirp.config import load_config
from app.chirp.db import init_db, teardown_db_session
from app.chirp.mailer import mailer_from_config
from app.chirp.routes import bp as routes_bp


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if app.config.get("PASSWORD_HASH_MIN_COST"):
            raise RuntimeError("PASSWORD_HASH_MIN_COST must not be enabled in production.")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        import os
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.extensions["mailer"] = mailer_from_config(app.config)

    app.register_blueprint(routes_bp)

    app.before_request(load_session_context)
    app.after_request(store_session_cookies)
    app.teardown_appcontext(teardown_db_session)

    if app.config.get("PASSWORD_HASH_MIN_COST"):
        app.logger.warning("Password hashing at minimum cost (ENV=%s)", env or "unset")

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
