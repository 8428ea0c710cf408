import logging

from .app import create_app
from .config import Settings
from .keepalive import KeepAlive

logger = logging.getLogger("yt_resolver")


def configure_logging(level):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def main():
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    app = create_app(settings)
    state = app.extensions["yt_resolver"]
    cache = state["cache"]

    keep_alive = KeepAlive(
        f"http://127.0.0.1:{settings.port}/health", settings.keep_alive_interval
    )
    cache.start_sweeper()
    keep_alive.start()

    logger.info("YouTube resolver running on port %s", settings.port)
    logger.info("Health check: http://localhost:%s/health", settings.port)
    try:
        app.run(host=settings.host, port=settings.port, threaded=True)
    finally:
        logger.info("Shutting down")
        keep_alive.stop()
        cache.stop_sweeper()


if __name__ == "__main__":
    main()
