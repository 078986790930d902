"""BMO client exceptions."""


class BMOClientError(Exception):
    """Base exception for the BMO client."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class BackendUnavailableError(BMOClientError):
    """The BMO backend could not be reached at all."""

    def __init__(self, base_url: str):
        super().__init__(f"Cannot connect to backend server! Make sure it's running on {base_url}")
        self.base_url = base_url


class AuthenticationError(BMOClientError):
    """The backend's upstream credential was rejected."""

    def __init__(self, message: str = "API key is invalid! Check your backend .env file."):
        super().__init__(message, status_code=401)


class RateLimitError(BMOClientError):
    """Upstream rate limit exceeded or credits exhausted."""

    def __init__(self, retry_after: int | None = None):
        msg = "Rate limit exceeded or out of credits"
        if retry_after:
            msg += f". Retry after {retry_after}s"
        super().__init__(msg, status_code=429)
        self.retry_after = retry_after
