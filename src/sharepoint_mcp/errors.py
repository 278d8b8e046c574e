"""Exception types raised by the SharePoint access layer."""

AUTH_REQUIRED_MESSAGE = "Authentication required. Please use the authenticate tool first."


class SharePointError(Exception):
    """Base class for all SharePoint MCP errors."""


class ConfigurationError(SharePointError):
    """Raised when required site, drive or client settings are missing."""


class AuthRequired(SharePointError):
    """Raised when no valid access token can be obtained.

    The remedy is always to run the authorization-code flow again; this
    error is never retried automatically.
    """

    def __init__(self, message: str = AUTH_REQUIRED_MESSAGE) -> None:
        super().__init__(message)


class AuthProviderError(SharePointError):
    """Raised when the identity provider rejects a code or refresh exchange."""

    def __init__(self, code: str, description: str | None = None) -> None:
        super().__init__(description or code)
        self.code = code
        self.description = description


class HttpError(SharePointError):
    """Raised when the Graph API answers outside the 2xx range."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


class TooManyRedirects(HttpError):
    """Raised when a download keeps redirecting past the configured cap."""

    def __init__(self, status: int, hops: int) -> None:
        super().__init__(status, f"Too many redirects ({hops}) while downloading file")
        self.hops = hops
