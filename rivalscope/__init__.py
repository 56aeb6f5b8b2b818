# rivalscope/__init__.py
from __future__ import annotations

import os
from typing import Any

from quart import Quart
from quart_schema import QuartSchema

from .config import get_config
from .utils.logger import get_logger
from .extensions import init_extensions, shutdown_extensions
from .routes.analysis import analysis_bp
from .routes.health import health_bp
from .routes.jobs import jobs_bp


async def create_app(config_object: object | None = None, **extension_overrides: Any) -> Quart:
    """Application factory for the RivalScope Quart app.

    Args:
        config_object: Optional explicit configuration class.  If not
            provided, the value of the ``APP_ENV`` environment variable
            is used to determine which configuration class to load via
            :func:`get_config`.  See :mod:`rivalscope.config` for details.
        **extension_overrides: Pre-built extensions (collaborator clients,
            runner, cache, job queue) forwarded to :func:`init_extensions`.

    Returns:
        A fully configured :class:`quart.Quart` application instance.
    """

    app = Quart(__name__, instance_relative_config=True)

    QuartSchema(app)

    env = os.environ.get("APP_ENV", "default")
    if config_object:
        app.config.from_object(config_object)
    else:
        app.config.from_object(get_config(env))

    # Inisialisasi logger global
    logger = get_logger("quart.app")
    logger.info("Starting RivalScope app in %s mode", app.config["ENV"])

    # Inisialisasi collaborator, runner, cache & job queue
    await init_extensions(app, **extension_overrides)
    logger.info("Extensions initialized successfully")

    @app.after_serving
    async def _cleanup():
        await shutdown_extensions(app)
        logger.info("Extensions shutdown successfully")

    # Register blueprints
    app.register_blueprint(analysis_bp)
    app.register_blueprint(jobs_bp)
    app.register_blueprint(health_bp)
    logger.info("Blueprints registered")

    return app
