from prometheus_client import CollectorRegistry

from traeusage.metrics import MetricsUpdater
from traeusage.models import CollectResult


class TestMetricsUpdater:
    def test_metric_families_are_created(
        self,
        registry: "CollectorRegistry",
    ) -> "None":
        MetricsUpdater(registry=registry)
        # prometheus_client strips _total suffix from Counter family names
        metric_names = [m.name for m in registry.collect()]
        assert "traeusage_collection_duration_seconds" in metric_names
        assert "traeusage_collection_errors" in metric_names
        assert "traeusage_last_collection_success_timestamp_seconds" in metric_names
        assert "traeusage_records_collected" in metric_names
        assert "traeusage_pages_fetched" in metric_names
        assert "traeusage_store_records" in metric_names

    def test_record_success_updates_counters(
        self,
        registry: "CollectorRegistry",
    ) -> "None":
        updater = MetricsUpdater(registry=registry)

        updater.record_success(
            CollectResult(collected=3, updated=1, total=10, pages=1),
            1000.0,
        )

        assert (
            registry.get_sample_value(
                "traeusage_records_collected_total", {"kind": "collected"}
            )
            == 3.0
        )
        assert (
            registry.get_sample_value(
                "traeusage_records_collected_total", {"kind": "updated"}
            )
            == 1.0
        )
        assert registry.get_sample_value("traeusage_store_records") == 10.0
        assert (
            registry.get_sample_value(
                "traeusage_last_collection_success_timestamp_seconds"
            )
            == 1000.0
        )

    def test_errors_are_labelled_by_stage(
        self,
        registry: "CollectorRegistry",
    ) -> "None":
        updater = MetricsUpdater(registry=registry)

        updater.inc_error("page_failed")
        updater.inc_error("page_failed")
        updater.observe_duration(0.5)

        assert (
            registry.get_sample_value(
                "traeusage_collection_errors_total", {"stage": "page_failed"}
            )
            == 2.0
        )
        assert (
            registry.get_sample_value("traeusage_collection_duration_seconds_count")
            == 1.0
        )
