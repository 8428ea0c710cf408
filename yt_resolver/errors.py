class ApiError(Exception):
    """Base for every failure that is reported to a client."""

    status = 500
    code = "internal_error"

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class InvalidInput(ApiError):
    status = 400
    code = "invalid_input"


class Unauthorized(ApiError):
    status = 401
    code = "unauthorized"


class Forbidden(ApiError):
    status = 403
    code = "forbidden"


class NotFound(ApiError):
    status = 404
    code = "not_found"


class ToolError(ApiError):
    status = 500
    code = "tool_error"


class EmptyOutput(ApiError):
    status = 500
    code = "empty_output"


class SpawnFailure(ApiError):
    status = 500
    code = "spawn_failure"


class TimedOut(ApiError):
    status = 504
    code = "timeout"
