import asyncio
import enum
import math
import time
from typing import Callable

import structlog

from traeusage.aggregator import filter_by_date, summarize
from traeusage.credentials import CredentialResolver
from traeusage.errors import (
    ApiError,
    AuthError,
    CollectionCancelled,
    CollectionError,
    CollectionInProgress,
    NetworkError,
)
from traeusage.merge import MergeCounts, merge_records
from traeusage.metrics import MetricsUpdater
from traeusage.models import (
    CollectResult,
    EntitlementSnapshot,
    FetchWindow,
    SubscriptionWindow,
    Summary,
    UsagePage,
    UsageRecord,
    UsageStore,
)
from traeusage.provider.base import UsageProvider
from traeusage.settings import SESSION_ID_KEY, SettingsStore
from traeusage.storage import BlobStorage, load_store, save_store

logger = structlog.get_logger()

# look-back applied to incremental runs so that records still being
# finalized at the previous cutoff are fetched again
OVERLAP_SECONDS = 3600
DEFAULT_PAGE_SIZE = 50
DEFAULT_PAGE_DELAY_SECONDS = 1.0


class CollectorState(enum.Enum):
    IDLE = "idle"
    RESOLVING_TOKEN = "resolving_token"
    FETCHING_WINDOW = "fetching_window"
    LOADING = "loading"
    PAGINATING = "paginating"
    MERGING = "merging"
    PERSISTING = "persisting"
    ABORTED = "aborted"


def compute_fetch_window(
    last_update_time: "int",
    subscription: "SubscriptionWindow",
    now: "int",
) -> "FetchWindow":
    """
    first collection starts at the subscription start; later ones
    start OVERLAP_SECONDS before the previous collection. The start
    is not clamped. The end never goes past now.
    """
    end_time = min(subscription.end_time, now)
    if last_update_time > 0:
        start_time = last_update_time - OVERLAP_SECONDS
    else:
        start_time = subscription.start_time
    return FetchWindow(start_time=start_time, end_time=end_time)


class Collector:
    """
    Collector runs incremental collection cycles. A cycle resolves a
    token, reads the subscription window, pages serially through the
    usage records of the computed window, merges them into a working
    copy of the stored records and persists that copy once at the
    end. Any failure before persistence leaves the stored data
    untouched.
    """

    def __init__(
        self,
        settings: "SettingsStore",
        resolver: "CredentialResolver",
        provider: "UsageProvider",
        blobs: "BlobStorage",
        metrics_updater: "MetricsUpdater",
        page_size: "int" = DEFAULT_PAGE_SIZE,
        page_delay_seconds: "float" = DEFAULT_PAGE_DELAY_SECONDS,
        clock: "Callable[[], float]" = time.time,
    ) -> "None":
        self._settings = settings
        self._resolver = resolver
        self._provider = provider
        self._blobs = blobs
        self._metrics = metrics_updater
        self._page_size = page_size
        self._page_delay = page_delay_seconds
        self._clock = clock
        self._state: "CollectorState" = CollectorState.IDLE
        self._collecting = False
        self._cancel_event: "asyncio.Event" = asyncio.Event()

    @property
    def state(self) -> "CollectorState":
        return self._state

    @property
    def collecting(self) -> "bool":
        return self._collecting

    def cancel(self) -> "None":
        """
        asks the running cycle to abort at the next page boundary.
        """
        if self._collecting:
            self._cancel_event.set()

    def get_store(self) -> "UsageStore":
        return load_store(self._blobs)

    def summarize(
        self,
        start_date: "str | None" = None,
        end_date: "str | None" = None,
    ) -> "Summary":
        records = self.get_store().records.values()
        return summarize(filter_by_date(records, start_date, end_date))

    async def fetch_entitlements(self) -> "EntitlementSnapshot | None":
        """
        returns the current entitlement snapshot for status display,
        or None when no session is configured.
        """
        session_id = self._settings.get(SESSION_ID_KEY)
        if not session_id:
            return None

        token = await self._resolver.get_token(session_id)
        return await self._provider.get_entitlements(token)

    async def collect(self) -> "CollectResult | None":
        """
        runs one collection cycle. Returns None when no session id is
        configured. Raises CollectionError on any abort and
        CollectionInProgress when a cycle is already running.
        """
        if self._collecting:
            raise CollectionInProgress("a collection cycle is already running")

        self._collecting = True
        self._cancel_event.clear()
        cycle_start = time.monotonic()
        skipped = False

        try:
            result = await self._run_cycle()
            skipped = result is None
        except CollectionError as exc:
            self._state = CollectorState.ABORTED
            self._metrics.inc_error(exc.reason)
            logger.warning("collection_aborted", reason=exc.reason, error=str(exc))
            raise
        except BaseException:
            self._state = CollectorState.ABORTED
            raise
        finally:
            self._collecting = False
            if not skipped:
                self._metrics.observe_duration(time.monotonic() - cycle_start)

        self._state = CollectorState.IDLE
        return result

    async def _run_cycle(self) -> "CollectResult | None":
        session_id = self._settings.get(SESSION_ID_KEY)
        if not session_id:
            logger.debug("collection_skipped", reason="no_session")
            return None

        self._state = CollectorState.RESOLVING_TOKEN
        try:
            token = await self._resolver.get_token(session_id)
        except (AuthError, NetworkError, ApiError) as exc:
            raise CollectionError("auth", str(exc)) from exc

        self._state = CollectorState.FETCHING_WINDOW
        subscription = await self._provider.get_subscription_window(token)
        if subscription is None:
            raise CollectionError("no_subscription", "cannot determine subscription window")

        self._state = CollectorState.LOADING
        store = load_store(self._blobs)
        now = int(self._clock())
        window = compute_fetch_window(store.last_update_time, subscription, now)

        logger.info(
            "collection_cycle_start",
            start_time=window.start_time,
            end_time=window.end_time,
            incremental=store.last_update_time > 0,
            stored_records=len(store.records),
        )

        # the loaded store is never touched; pages merge into this copy
        working = dict(store.records)
        counts = MergeCounts()

        first = await self._fetch_page(token, window, 1)
        total_pages = math.ceil(first.total / self._page_size)
        self._merge(working, first, counts)
        logger.info("usage_pages_planned", total_records=first.total, total_pages=total_pages)

        for page_num in range(2, total_pages + 1):
            self._check_cancelled()
            await asyncio.sleep(self._page_delay)
            self._check_cancelled()

            page = await self._fetch_page(token, window, page_num)
            self._merge(working, page, counts)
            logger.debug(
                "page_merged",
                page_num=page_num,
                total_pages=total_pages,
                working_records=len(working),
            )

        self._state = CollectorState.PERSISTING
        new_store = UsageStore(
            last_update_time=now,
            covered_start=subscription.start_time,
            covered_end=subscription.end_time,
            records=working,
        )
        try:
            save_store(self._blobs, new_store)
        except OSError as exc:
            raise CollectionError("persist", str(exc)) from exc

        result = CollectResult(
            collected=counts.collected,
            updated=counts.updated,
            total=len(working),
            pages=max(total_pages, 1),
        )
        self._metrics.record_success(result, self._clock())
        logger.info(
            "collection_cycle_end",
            collected=result.collected,
            updated=result.updated,
            total=result.total,
        )
        return result

    async def _fetch_page(
        self,
        token: "str",
        window: "FetchWindow",
        page_num: "int",
    ) -> "UsagePage":
        self._state = CollectorState.PAGINATING
        page = await self._provider.fetch_page(
            token,
            window.start_time,
            window.end_time,
            page_num,
            self._page_size,
        )
        if page is None:
            raise CollectionError("page_failed", f"usage page {page_num} could not be fetched")

        self._metrics.inc_pages()
        return page

    def _merge(
        self,
        working: "dict[str, UsageRecord]",
        page: "UsagePage",
        counts: "MergeCounts",
    ) -> "None":
        self._state = CollectorState.MERGING
        merge_records(working, page.records, counts)

    def _check_cancelled(self) -> "None":
        if self._cancel_event.is_set():
            raise CollectionCancelled()
