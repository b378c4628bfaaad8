import asyncio

import structlog

from traeusage.config import DEFAULT_HOST, FALLBACK_HOST
from traeusage.errors import AuthError, NetworkError
from traeusage.provider.base import UsageProvider
from traeusage.settings import HOST_KEY, SettingsStore

logger = structlog.get_logger()

MAX_RETRY_COUNT = 5
RETRY_DELAY_SECONDS = 1.0


def other_host(host: "str") -> "str":
    return FALLBACK_HOST if host == DEFAULT_HOST else DEFAULT_HOST


class CredentialResolver:
    """
    CredentialResolver turns a session id into a bearer token.

    It caches a single (session_id, token) pair, fails over to the
    other regional host at most once per resolution attempt when the
    exchange is rejected with the authentication error code, and
    retries transient network errors a bounded number of times.

    The current host lives on the instance; the settings store only
    receives it as a persistence side effect when it changes.
    """

    def __init__(
        self,
        provider: "UsageProvider",
        settings: "SettingsStore",
        max_retries: "int" = MAX_RETRY_COUNT,
        retry_delay: "float" = RETRY_DELAY_SECONDS,
    ) -> "None":
        self._provider = provider
        self._settings = settings
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._current_host: "str" = settings.get(HOST_KEY) or DEFAULT_HOST
        # (session_id, token); replaced as a whole so readers never
        # observe a token paired with the wrong session
        self._cached: "tuple[str, str] | None" = None
        self._lock: "asyncio.Lock" = asyncio.Lock()

    @property
    def current_host(self) -> "str":
        return self._current_host

    def clear_cache(self) -> "None":
        """
        forces the next get_token() call to exchange again.
        """
        self._cached = None

    async def get_token(self, session_id: "str") -> "str":
        cached = self._cached
        # fast path: check cache without lock
        if cached is not None and cached[0] == session_id:
            return cached[1]

        async with self._lock:
            # re-check after acquiring lock (another task may have resolved it)
            cached = self._cached
            if cached is not None:
                if cached[0] == session_id:
                    return cached[1]
                self._cached = None

            token = await self._exchange(session_id)
            self._cached = (session_id, token)
            return token

    async def _exchange(self, session_id: "str") -> "str":
        failed_over = False
        retry_count = 0

        while True:
            host = self._current_host
            try:
                token = await self._provider.exchange_token(session_id, host)
                logger.info("token_refreshed", host=host)
                return token

            except AuthError:
                if failed_over:
                    logger.error("token_unavailable", host=host)
                    raise

                target = other_host(host)
                logger.warning("host_failover", from_host=host, to_host=target)
                self._set_host(target)
                failed_over = True
                retry_count = 0

            except NetworkError as exc:
                logger.warning(
                    "token_exchange_failed",
                    host=host,
                    attempt=retry_count + 1,
                    max_retries=self._max_retries,
                    error=str(exc),
                )
                if retry_count >= self._max_retries:
                    logger.error("network_unstable", attempts=retry_count + 1)
                    raise
                retry_count += 1
                await asyncio.sleep(self._retry_delay)

    def _set_host(self, host: "str") -> "None":
        if host == self._current_host:
            return
        self._current_host = host
        self._settings.set(HOST_KEY, host)
