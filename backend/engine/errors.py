"""Error kinds raised inside the engine.

Upstream errors never escape the collectors; they are carried inside a
``SourceResult`` so the feed can degrade instead of failing. Model and
validation errors are mapped to HTTP status codes in ``api.routes``.
"""


class RadarError(Exception):
    kind = "RadarError"


class UpstreamError(RadarError):
    kind = "UpstreamError"

    def __init__(self, source: str, message: str = ""):
        self.source = source
        super().__init__(f"{source}: {message}" if message else source)


class UpstreamUnavailable(UpstreamError):
    kind = "UpstreamUnavailable"


class UpstreamThrottled(UpstreamError):
    kind = "UpstreamThrottled"


class UpstreamShapeMismatch(UpstreamError):
    kind = "UpstreamShapeMismatch"


class UpstreamTimeout(UpstreamError):
    kind = "UpstreamTimeout"


class ModelInvocationFailed(RadarError):
    kind = "ModelInvocationFailed"


class ModelResponseUnparseable(RadarError):
    kind = "ModelResponseUnparseable"


class InputValidationFailed(RadarError):
    kind = "InputValidationFailed"

    def __init__(self, field: str, message: str = ""):
        self.field = field
        super().__init__(message or f"Missing or invalid '{field}' field")


class ConfigMissing(RadarError):
    kind = "ConfigMissing"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"{name} not configured")
