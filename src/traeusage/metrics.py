from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

from traeusage.models import CollectResult


class MetricsUpdater:
    """
    applies collection cycle outcomes to Prometheus collectors.
    """

    def __init__(self, registry: "CollectorRegistry" = REGISTRY) -> "None":
        self._registry: "CollectorRegistry" = registry
        self._duration: "Histogram" = Histogram(
            "traeusage_collection_duration_seconds",
            "Duration of usage collection cycles",
            registry=registry,
        )
        self._errors: "Counter" = Counter(
            "traeusage_collection_errors_total",
            "Total number of aborted collection cycles by stage",
            ["stage"],
            registry=registry,
        )
        self._last_success: "Gauge" = Gauge(
            "traeusage_last_collection_success_timestamp_seconds",
            "Unix timestamp of the last successful collection cycle",
            registry=registry,
        )
        self._records: "Counter" = Counter(
            "traeusage_records_collected_total",
            "Usage records merged into the store, by kind",
            ["kind"],
            registry=registry,
        )
        self._pages: "Counter" = Counter(
            "traeusage_pages_fetched_total",
            "Usage pages fetched from the billing API",
            registry=registry,
        )
        self._store_records: "Gauge" = Gauge(
            "traeusage_store_records",
            "Number of records held by the persisted usage store",
            registry=registry,
        )

    @property
    def registry(self) -> "CollectorRegistry":
        return self._registry

    def observe_duration(self, duration_seconds: "float") -> "None":
        self._duration.observe(duration_seconds)

    def inc_error(self, stage: "str") -> "None":
        self._errors.labels(stage=stage).inc()

    def inc_pages(self, count: "int" = 1) -> "None":
        self._pages.inc(count)

    def record_success(self, result: "CollectResult", timestamp: "float") -> "None":
        """
        updates the counters and gauges after a persisted cycle.
        """
        self._records.labels(kind="collected").inc(result.collected)
        self._records.labels(kind="updated").inc(result.updated)
        self._store_records.set(result.total)
        self._last_success.set(timestamp)
