"""Custom exception hierarchy for the Koyn Finance aggregation server.

Upstream failures inherit from DataFetchError, which carries the symbol and
provider involved. Request-level failures (auth, quota, bad parameters) have
their own branch because they are the only errors a caller ever sees.
"""


class DataFetchError(Exception):
    """Base exception for all upstream data-fetching failures.

    Attributes:
        symbol: The symbol (or query) involved in the failure.
        source: The upstream provider that failed (e.g., "fmp", "dexscreener").
        http_status: The HTTP status code, if the failure was HTTP-related.
    """

    def __init__(
        self,
        message: str,
        *,
        symbol: str,
        source: str,
        http_status: int | None = None,
    ) -> None:
        self.symbol = symbol
        self.source = source
        self.http_status = http_status
        super().__init__(message)


class SymbolNotFoundError(DataFetchError):
    """Raised when an upstream returns no rows for the requested symbol."""


class UpstreamUnavailableError(DataFetchError):
    """Raised when a provider is unreachable, times out, or returns errors."""


class UpstreamRateLimitError(DataFetchError):
    """Raised when a provider answers HTTP 429.

    Attributes:
        retry_after: Seconds the provider asked us to wait, when it said so.
    """

    def __init__(
        self,
        message: str,
        *,
        symbol: str,
        source: str,
        http_status: int | None = 429,
        retry_after: float | None = None,
    ) -> None:
        self.retry_after = retry_after
        super().__init__(message, symbol=symbol, source=source, http_status=http_status)


class ResolutionFailure(Exception):
    """Raised when every asset resolution tier came back empty."""

    def __init__(self, query: str) -> None:
        self.query = query
        super().__init__(f"Could not resolve an asset for query '{query}'")


class AnalysisDegradedError(Exception):
    """Raised when the narrative LLM could not produce any text."""


# ---------------------------------------------------------------------------
# Request-level errors (mapped to HTTP responses in web.middleware)
# ---------------------------------------------------------------------------


class RequestError(Exception):
    """Base for errors that are reported to the API caller.

    ``error`` is the short title placed in the response body next to the
    human-readable ``message``.
    """

    status_code: int = 400
    title: str = "Bad Request"

    def __init__(self, message: str, *, error: str | None = None) -> None:
        self.message = message
        self.error = error or self.title
        super().__init__(message)


class InvalidRequestError(RequestError):
    """Raised for missing or malformed request parameters."""


class NotFoundError(RequestError):
    """Raised when a chart request produced no data at all."""

    status_code = 404
    title = "No data found"


class AuthError(RequestError):
    """Raised when the caller has no valid credential or subscription."""

    status_code = 401
    title = "Unauthorized"

    def __init__(
        self,
        message: str,
        *,
        action: str = "Please subscribe or sign in to access this feature",
    ) -> None:
        self.action = action
        super().__init__(message)


class QuotaExceededError(RequestError):
    """Raised when a subscription has used up its daily request allowance.

    Attributes:
        used: Requests already consumed today.
        limit: Daily limit for the plan.
        plan: Plan name the limit was derived from.
    """

    status_code = 429
    title = "Rate Limit Exceeded"

    def __init__(self, *, used: int, limit: int, plan: str) -> None:
        self.used = used
        self.limit = limit
        self.plan = plan
        super().__init__(
            f"Daily API limit exceeded. You have used {used}/{limit} requests today."
        )
