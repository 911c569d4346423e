"""Typed exception hierarchy for aggregator errors.

Callers branch on these (auth vs transport vs data), so the Plaid error
fields are carried through unchanged rather than flattened into a message
string.
"""


class AggregatorError(Exception):
    """Base exception for all aggregator-related errors."""

    pass


class AggregatorConnectionError(AggregatorError):
    """Network failures: timeouts, DNS resolution, connection refused."""

    pass


class AggregatorAPIError(AggregatorError):
    """A structured error response from the Plaid API.

    ``error_type``, ``error_code`` and ``error_message`` are Plaid's own
    fields (e.g. ``ITEM_ERROR`` / ``ITEM_LOGIN_REQUIRED``).
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_type: str | None = None,
        error_code: str | None = None,
        error_message: str | None = None,
        request_id: str | None = None,
    ):
        self.status_code = status_code
        self.error_type = error_type
        self.error_code = error_code
        self.error_message = error_message
        self.request_id = request_id
        super().__init__(message)


class AggregatorAuthError(AggregatorAPIError):
    """The access token is invalid or the user must re-authenticate."""

    pass


class AggregatorDataError(AggregatorError):
    """Malformed or unparseable response from the aggregator."""

    pass
