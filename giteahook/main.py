"""
FastAPI application and command line entry point.
"""

import asyncio
import signal
import sys
from contextlib import asynccontextmanager
from typing import Optional

import click
import uvicorn
from fastapi import FastAPI

from giteahook import __version__
from giteahook.api import webhooks
from giteahook.config import settings
from giteahook.services.config_store import ConfigLoadError, ConfigStore
from giteahook.services.dispatcher import PushDispatcher
from giteahook.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def _register_reload_handler(store: ConfigStore) -> bool:
    """Reload the configuration on SIGHUP. Returns False where unsupported."""
    try:
        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGHUP, store.reload)
    except (AttributeError, NotImplementedError, RuntimeError, ValueError) as e:
        # No SIGHUP on Windows; signals only reach the main thread's loop
        logger.warning(f"SIGHUP config reload unavailable: {e}")
        return False

    logger.info("Signal handler registered (SIGHUP reloads configuration)")
    return True


def _remove_reload_handler() -> None:
    asyncio.get_running_loop().remove_signal_handler(signal.SIGHUP)


def create_app(
    store: ConfigStore,
    command_timeout: Optional[float] = None,
    reload_on_sighup: bool = True
) -> FastAPI:
    """
    Build the webhook application around a loaded ConfigStore.

    Args:
        store: Holder of the active configuration
        command_timeout: Per-command timeout in seconds (None or <= 0 for none)
        reload_on_sighup: Install the SIGHUP reload handler on startup

    Returns:
        Configured FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        snapshot = store.current()
        logger.info(
            f"Listening on {snapshot.config.listen_address}",
            extra={"repositories": len(snapshot.config.repositories)}
        )
        registered = reload_on_sighup and _register_reload_handler(store)
        yield
        if registered:
            _remove_reload_handler()
        logger.info("Shutting down webhook receiver")

    app = FastAPI(
        title="Gitea Push Webhook Receiver",
        description="Runs configured commands for Gitea and Gogs push notifications",
        version=__version__,
        lifespan=lifespan
    )

    app.state.store = store
    app.state.dispatcher = PushDispatcher(store, command_timeout=command_timeout)

    @app.get("/health")
    async def health_check():
        """Health check endpoint for container orchestration."""
        return {
            "status": "healthy",
            "version": __version__,
            "repositories": len(store.current().config.repositories),
        }

    app.include_router(webhooks.router)

    return app


@click.command()
@click.version_option(__version__)
@click.argument("config_file", required=False)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Log level (defaults to GITEAHOOK_LOG_LEVEL or INFO)",
)
def main(config_file: Optional[str], log_level: Optional[str]):
    """Run the webhook receiver with CONFIG_FILE (default: config.json)."""
    config_file = config_file or settings.config_file

    try:
        store = ConfigStore.from_file(config_file)
    except ConfigLoadError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    config = store.current().config

    try:
        setup_logging(log_level or settings.log_level, config.logfile or None)
    except OSError as e:
        click.echo(f"Error: cannot open log file {config.logfile}: {e}", err=True)
        sys.exit(1)

    app = create_app(store, command_timeout=settings.command_timeout_seconds)

    # uvicorn exits with status 1 when the address cannot be bound
    uvicorn.run(app, host=config.address or "0.0.0.0", port=config.port, log_config=None)


if __name__ == "__main__":
    main()
