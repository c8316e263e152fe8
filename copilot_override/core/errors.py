"""Project error hierarchy."""


class OverrideError(Exception):
    """Base error."""


class ConfigError(OverrideError):
    """Raised when the config file cannot be read or validated."""


class AuthTokenMismatch(OverrideError):
    """Raised when the path-embedded token does not match the configured one."""


class UpstreamError(OverrideError):
    """Base for failures while talking to the upstream."""


class UpstreamTimeoutError(UpstreamError):
    """The caller went away or the upstream call timed out."""


class UpstreamTransportError(UpstreamError):
    """Connection-level failure talking to the upstream."""


class UpstreamRequestError(UpstreamError):
    """The outbound request could not be built (bad base URL, bad header value)."""
