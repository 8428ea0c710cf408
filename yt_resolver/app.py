import logging
import time
from datetime import datetime, timezone

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from . import __version__
from .auth import AuthorizationGate
from .cache import ResultCache
from .config import Settings
from .errors import ApiError
from .keys import KeyRegistry
from .orchestrator import Orchestrator
from .runner import ExtractionRunner, OperationKind

logger = logging.getLogger(__name__)


def create_app(settings=None, registry=None, cache=None, runner=None):
    if settings is None:
        settings = Settings.from_env()
    if registry is None:
        registry = KeyRegistry(settings.master_key, settings.api_keys)
        if registry.generated_master:
            logger.warning(
                "MASTER_API_KEY not set, generated one for this run: %s", registry.master_key
            )
    if cache is None:
        cache = ResultCache(settings.cache_ttl, settings.cache_check_period)
    if runner is None:
        runner = ExtractionRunner(settings)
    orchestrator = Orchestrator(cache, runner, {
        OperationKind.METADATA: settings.info_timeout,
        OperationKind.AUDIO: settings.audio_timeout,
        OperationKind.VIDEO: settings.video_timeout,
    })
    gate = AuthorizationGate(registry)
    started = time.monotonic()

    app = Flask(__name__)
    app.json.sort_keys = False
    app.extensions["yt_resolver"] = {
        "settings": settings,
        "registry": registry,
        "cache": cache,
        "orchestrator": orchestrator,
    }
    gate.init_app(app)

    @app.errorhandler(ApiError)
    def api_error(e):
        return jsonify(e.to_dict()), e.status

    @app.errorhandler(HTTPException)
    def http_error(e):
        code = e.name.lower().replace(" ", "_")
        return jsonify({"error": e.description, "code": code}), e.code

    # ===== API =====

    @app.route("/health")
    def health():
        return jsonify({
            "status": "alive",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - started, 3),
            "version": __version__,
        })

    @app.route("/")
    def index():
        return jsonify({
            "message": "YouTube media URL resolver",
            "version": __version__,
            "requiresAuth": True,
            "endpoints": {
                "health": "/health (no auth required)",
                "audio": "/audio?url=<youtube_url>&key=<api_key>",
                "video": "/video?url=<youtube_url>&key=<api_key>",
                "info": "/info?url=<youtube_url>&key=<api_key>",
                "generate-key": "/generate-key?master_key=<master_key>",
                "cache-stats": "/cache/stats?key=<api_key>",
            },
            "auth": {
                "method": "Query parameter or Header",
                "queryParam": "key=YOUR_API_KEY",
                "header": "X-API-Key: YOUR_API_KEY",
                "bearer": "Authorization: Bearer YOUR_API_KEY",
            },
        })

    @app.route("/generate-key")
    @gate.require_master_key
    def generate_key():
        new_key = registry.issue_key(g.master_key)
        return jsonify({
            "success": True,
            "message": "New API key generated successfully",
            "api_key": new_key,
            "usage": f"?key={new_key} or Header: X-API-Key: {new_key}",
            "expires": "Never (stored in memory, resets on restart)",
        })

    @app.route("/info")
    def info():
        return jsonify(orchestrator.handle(OperationKind.METADATA, request.args.get("url")))

    @app.route("/audio")
    def audio():
        return jsonify(orchestrator.handle(OperationKind.AUDIO, request.args.get("url")))

    @app.route("/video")
    def video():
        return jsonify(orchestrator.handle(OperationKind.VIDEO, request.args.get("url")))

    @app.route("/cache/stats")
    def cache_stats():
        return jsonify(cache.stats())

    return app
