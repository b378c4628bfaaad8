import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import httpx
import structlog

from traeusage.config import DEFAULT_HOST
from traeusage.errors import ApiError, AuthError, NetworkError, TokenExpiredError
from traeusage.models import (
    EntitlementPack,
    EntitlementSnapshot,
    SubscriptionWindow,
    UsagePage,
    UsageRecord,
)
from traeusage.settings import HOST_KEY, SettingsStore

logger = structlog.get_logger()

TOKEN_PATH = "/cloudide/api/v3/common/GetUserToken"
ENTITLEMENT_PATH = "/trae/api/v1/pay/user_current_entitlement_list"
USAGE_PATH = "/trae/api/v1/pay/query_user_usage_group_by_session"

# ResponseMetadata.Error.Code returned when the session is
# rejected by the current region
TOKEN_ERROR_CODE = "20310"
# top-level code returned when the bearer token has expired
TOKEN_EXPIRED_CODE = 1001

_TRANSIENT_ERRORS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.ProxyError,
    httpx.RemoteProtocolError,
)

T = TypeVar("T")


def _error_code(data: "Any") -> "str | None":
    """
    extracts ResponseMetadata.Error.Code from a response body.
    """
    if not isinstance(data, dict):
        return None
    error = (data.get("ResponseMetadata") or {}).get("Error") or {}
    code = error.get("Code")
    return str(code) if code is not None else None


class TraeProvider:
    """
    TraeProvider implements the UsageProvider protocol for the Trae
    billing API. The host for entitlement and usage calls is read
    from the settings store on every request so that a failover
    performed by the credential resolver is picked up immediately.
    """

    def __init__(
        self,
        settings: "SettingsStore",
        request_timeout: "float" = 3.0,
        page_timeout: "float" = 10.0,
        max_attempts: "int" = 5,
        retry_delay: "float" = 1.0,
        on_token_expired: "Callable[[], None] | None" = None,
    ) -> "None":
        self._settings = settings
        self._request_timeout = request_timeout
        self._page_timeout = page_timeout
        self._max_attempts = max(1, max_attempts)
        self._retry_delay = retry_delay
        self.on_token_expired = on_token_expired
        self._client: "httpx.AsyncClient" = httpx.AsyncClient(
            timeout=request_timeout,
            headers={"Content-Type": "application/json"},
        )

    @property
    def host(self) -> "str":
        return self._settings.get(HOST_KEY) or DEFAULT_HOST

    async def close(self) -> "None":
        """
        closes the underlying HTTP client.
        """
        await self._client.aclose()

    async def _post(
        self,
        url: "str",
        headers: "dict[str, str]",
        body: "dict[str, Any]",
        timeout: "float",
    ) -> "tuple[httpx.Response, Any]":
        try:
            resp = await self._client.post(
                url, json=body, headers=headers, timeout=timeout
            )
        except _TRANSIENT_ERRORS as exc:
            raise NetworkError(f"{type(exc).__name__}: {exc}") from exc
        except httpx.HTTPError as exc:
            raise ApiError(f"{type(exc).__name__}: {exc}") from exc

        try:
            data = resp.json()
        except ValueError:
            data = None
        return resp, data

    async def _post_json(
        self,
        path: "str",
        token: "str",
        body: "dict[str, Any]",
        timeout: "float",
    ) -> "dict[str, Any]":
        resp, data = await self._post(
            f"{self.host}{path}",
            {"authorization": f"Cloud-IDE-JWT {token}"},
            body,
            timeout,
        )
        if resp.status_code >= 400:
            raise ApiError(f"{path} returned HTTP {resp.status_code}")
        if not isinstance(data, dict):
            raise ApiError(f"{path} returned a non-object body")
        return data

    async def _with_retry(
        self,
        operation: "str",
        call: "Callable[[], Awaitable[T]]",
    ) -> "T":
        """
        runs call up to max_attempts times, waiting retry_delay * attempt
        between attempts. Re-raises the last error once exhausted.
        """
        attempt = 1
        while True:
            try:
                result = await call()
                if attempt > 1:
                    logger.info("request_recovered", operation=operation, attempt=attempt)
                return result
            except (NetworkError, ApiError) as exc:
                logger.warning(
                    "request_attempt_failed",
                    operation=operation,
                    attempt=attempt,
                    max_attempts=self._max_attempts,
                    error=str(exc),
                )
                if attempt >= self._max_attempts:
                    raise
            await asyncio.sleep(self._retry_delay * attempt)
            attempt += 1

    def _check_code(self, operation: "str", data: "dict[str, Any]") -> "None":
        code = data.get("code")
        if not code:
            return
        if code == TOKEN_EXPIRED_CODE:
            logger.warning("token_expired", operation=operation)
            if self.on_token_expired is not None:
                self.on_token_expired()
            raise TokenExpiredError(f"{operation}: token expired (code {code})")
        raise ApiError(f"{operation}: code {code}: {data.get('message') or 'unknown error'}")

    async def exchange_token(self, session_id: "str", host: "str") -> "str":
        """
        exchanges a session cookie for a bearer token against host.
        A single attempt; the credential resolver owns retries and
        failover.
        """
        resp, data = await self._post(
            f"{host}{TOKEN_PATH}",
            {"Cookie": f"X-Cloudide-Session={session_id}"},
            {},
            self._request_timeout,
        )

        if _error_code(data) == TOKEN_ERROR_CODE:
            raise AuthError(f"token exchange rejected by {host} (code {TOKEN_ERROR_CODE})")
        if resp.status_code >= 400:
            raise ApiError(f"token exchange returned HTTP {resp.status_code}")

        try:
            token = data["Result"]["Token"]
        except (KeyError, TypeError) as exc:
            raise ApiError("token exchange response has no Result.Token") from exc
        if not token:
            raise ApiError("token exchange returned an empty token")

        logger.debug("token_exchanged", host=host)
        return str(token)

    async def get_entitlements(self, token: "str") -> "EntitlementSnapshot":
        """
        fetches the current entitlement list. Raises TokenExpiredError,
        ApiError or NetworkError.
        """
        data = await self._with_retry(
            "entitlement_list",
            lambda: self._post_json(ENTITLEMENT_PATH, token, {}, self._request_timeout),
        )
        self._check_code("entitlement_list", data)

        packs = tuple(
            EntitlementPack.from_api(raw)
            for raw in data.get("user_entitlement_pack_list") or []
        )
        return EntitlementSnapshot(
            packs=packs,
            is_pay_freshman=bool(data.get("is_pay_freshman", False)),
        )

    async def get_subscription_window(
        self,
        token: "str",
    ) -> "SubscriptionWindow | None":
        """
        returns the first entitlement pack's validity window, or None
        when there is no pack or the entitlement call failed.
        """
        try:
            snapshot = await self.get_entitlements(token)
        except (NetworkError, ApiError, TokenExpiredError) as exc:
            logger.warning("subscription_window_unavailable", error=str(exc))
            return None

        window = snapshot.window()
        if window is None:
            logger.info("no_entitlement_pack")
        return window

    async def fetch_page(
        self,
        token: "str",
        start_time: "int",
        end_time: "int",
        page_num: "int",
        page_size: "int",
    ) -> "UsagePage | None":
        """
        fetches one 1-based page of usage records. Returns None once
        retries are exhausted or the body cannot be parsed.
        """
        body = {
            "start_time": start_time,
            "end_time": end_time,
            "page_num": page_num,
            "page_size": page_size,
        }
        logger.debug("usage_page_request", page_num=page_num, page_size=page_size)

        try:
            data = await self._with_retry(
                f"usage_page_{page_num}",
                lambda: self._post_json(USAGE_PATH, token, body, self._page_timeout),
            )
            self._check_code(f"usage_page_{page_num}", data)
            records = [
                UsageRecord.from_api(raw)
                for raw in data.get("user_usage_group_by_sessions") or []
            ]
            total = int(data.get("total", 0))
        except (NetworkError, ApiError, TokenExpiredError) as exc:
            logger.error("usage_page_failed", page_num=page_num, error=str(exc))
            return None
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.error("usage_page_malformed", page_num=page_num, error=str(exc))
            return None

        return UsagePage(total=total, records=records)
