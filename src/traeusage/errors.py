class TraeUsageError(Exception):
    """
    base class for every error raised by traeusage.
    """


class AuthError(TraeUsageError):
    """
    the token exchange was rejected with the authentication
    error code, including after a host failover.
    """


class NetworkError(TraeUsageError):
    """
    transient transport failure: timeout, DNS, connection
    reset or proxy failure. Safe to retry.
    """


class ApiError(TraeUsageError):
    """
    the API answered but the response was unusable (non-2xx
    status, non-zero code or malformed body).
    """


class TokenExpiredError(TraeUsageError):
    """
    the API reported that the bearer token is no longer valid.
    """


class CollectionError(TraeUsageError):
    """
    a collection cycle aborted. reason is a short status code
    the calling shell translates into a user-facing message.
    """

    def __init__(self, reason: "str", message: "str" = "") -> "None":
        super().__init__(message or reason)
        self.reason = reason


class CollectionCancelled(CollectionError):
    def __init__(self) -> "None":
        super().__init__("cancelled", "collection cancelled at page boundary")


class CollectionInProgress(TraeUsageError):
    """
    collect() was called while another cycle was still running.
    """
