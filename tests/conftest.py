import pytest
from prometheus_client import CollectorRegistry

from traeusage.models import TokenCounts, UsageRecord


@pytest.fixture()
def registry() -> "CollectorRegistry":
    """
    fresh Prometheus registry to avoid cross-test state.
    """
    return CollectorRegistry()


@pytest.fixture()
def make_record():
    """
    factory for usage records with sensible defaults.
    """

    def _make(
        session_id: "str",
        usage_time: "int" = 100,
        model_name: "str" = "A",
        amount: "float" = 1.0,
        cost_money: "float" = 0.1,
        mode: "str" = "",
    ) -> "UsageRecord":
        return UsageRecord(
            session_id=session_id,
            usage_time=usage_time,
            model_name=model_name,
            mode=mode,
            amount=amount,
            cost_money=cost_money,
            tokens=TokenCounts(input=10, output=5, cache_read=2, cache_write=1),
        )

    return _make
