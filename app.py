"""WSGI entry point: gunicorn app:app"""

from yt_resolver import create_app
from yt_resolver.__main__ import configure_logging, main
from yt_resolver.config import Settings

if __name__ == "__main__":
    main()
else:
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    app = create_app(settings)
    app.extensions["yt_resolver"]["cache"].start_sweeper()
