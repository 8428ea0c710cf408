import logging
from functools import wraps

from flask import g, request

from .errors import Forbidden, Unauthorized

logger = logging.getLogger(__name__)

PUBLIC_PATHS = frozenset({"/", "/health"})
MASTER_PATHS = frozenset({"/generate-key"})


def api_key_from(req):
    """?key=, then X-API-Key, then Authorization: Bearer."""
    key = req.args.get("key") or req.headers.get("X-API-Key")
    if not key:
        auth_header = req.headers.get("Authorization", "")
        if auth_header.lower().startswith("bearer "):
            key = auth_header.split(" ", 1)[1].strip()
    return key or None


def master_key_from(req):
    return req.args.get("master_key") or req.headers.get("X-Master-Key") or None


class AuthorizationGate:
    def __init__(self, registry, public_paths=PUBLIC_PATHS, master_paths=MASTER_PATHS):
        self.registry = registry
        self.public_paths = public_paths
        self.master_paths = master_paths

    def init_app(self, app):
        app.before_request(self.check_request)

    def check_request(self):
        # CORS preflight never carries credentials
        if request.method == "OPTIONS":
            return None
        if request.path in self.public_paths or request.path in self.master_paths:
            return None
        g.api_key = self.authorize(api_key_from(request))
        return None

    def authorize(self, key):
        if not key:
            raise Unauthorized(
                "Missing API key",
                "Provide key as query parameter (?key=YOUR_KEY) or header (X-API-Key: YOUR_KEY)",
            )
        if not self.registry.is_valid(key):
            logger.warning("Invalid API key attempt: %s...", key[:10])
            raise Forbidden("Invalid API key", "The provided API key is not valid")
        return key

    def authorize_master(self, key):
        if not key:
            raise Unauthorized(
                "Missing master key",
                "Provide master_key as query parameter or X-Master-Key header",
            )
        if not self.registry.is_master(key):
            logger.warning("Invalid master key attempt")
            raise Forbidden("Invalid master key", "The provided master key is not valid")
        return key

    def require_master_key(self, f):
        @wraps(f)
        def decorated(*args, **kwargs):
            g.master_key = self.authorize_master(master_key_from(request))
            return f(*args, **kwargs)
        return decorated
