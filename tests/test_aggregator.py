import pytest

from traeusage.aggregator import filter_by_date, summarize, usage_date

# 2024-03-01T10:00:00Z and 2024-03-02T23:30:00Z
DAY_ONE = 1709287200
DAY_TWO = 1709422200


class TestSummarize:
    def test_totals_and_per_model(self, make_record) -> "None":
        records = [
            make_record("s1", model_name="A", amount=10, cost_money=1),
            make_record("s2", model_name="A", amount=5, cost_money=0.5),
            make_record("s3", model_name="B", amount=2, cost_money=0.2),
        ]

        summary = summarize(records)

        assert summary.total_sessions == 3
        assert summary.total_amount == pytest.approx(17)
        assert summary.total_cost == pytest.approx(1.7)
        a = summary.per_model["A"]
        assert a.count == 2
        assert a.amount == pytest.approx(15)
        assert a.cost == pytest.approx(1.5)
        b = summary.per_model["B"]
        assert b.count == 1
        assert b.amount == pytest.approx(2)
        assert b.cost == pytest.approx(0.2)

    def test_model_token_subtotals(self, make_record) -> "None":
        summary = summarize([make_record("s1"), make_record("s2")])

        stats = summary.per_model["A"]
        assert stats.input_tokens == 20
        assert stats.output_tokens == 10
        assert stats.cache_read_tokens == 4
        assert stats.cache_write_tokens == 2

    def test_empty_mode_uses_default_label(self, make_record) -> "None":
        summary = summarize(
            [
                make_record("s1", mode=""),
                make_record("s2", mode="Max"),
                make_record("s3", mode="Max"),
            ]
        )

        assert summary.per_mode["Normal"].count == 1
        assert summary.per_mode["Max"].count == 2

    def test_per_day_buckets_by_utc_date(self, make_record) -> "None":
        summary = summarize(
            [
                make_record("s1", usage_time=DAY_ONE, model_name="A"),
                make_record("s2", usage_time=DAY_ONE + 60, model_name="B"),
                make_record("s3", usage_time=DAY_TWO, model_name="A"),
            ]
        )

        assert set(summary.per_day) == {"2024-03-01", "2024-03-02"}
        assert summary.per_day["2024-03-01"].count == 2
        assert summary.per_day["2024-03-01"].models == frozenset({"A", "B"})
        assert summary.per_day["2024-03-02"].models == frozenset({"A"})

    def test_empty_input(self) -> "None":
        summary = summarize([])
        assert summary.total_sessions == 0
        assert summary.per_model == {}

    def test_to_dict_orders_for_display(self, make_record) -> "None":
        summary = summarize(
            [
                make_record("s1", usage_time=DAY_ONE, model_name="small", amount=1),
                make_record("s2", usage_time=DAY_TWO, model_name="big", amount=9),
            ]
        )

        data = summary.to_dict()

        assert list(data["per_model"]) == ["big", "small"]
        assert list(data["per_day"]) == ["2024-03-02", "2024-03-01"]
        assert data["per_day"]["2024-03-01"]["models"] == ["small"]


class TestFilterByDate:
    def test_no_bounds_keeps_everything(self, make_record) -> "None":
        records = [make_record("s1"), make_record("s2")]
        assert filter_by_date(records) == records

    def test_bounds_are_inclusive(self, make_record) -> "None":
        records = [
            make_record("s1", usage_time=DAY_ONE),
            make_record("s2", usage_time=DAY_TWO),
        ]

        assert [r.session_id for r in filter_by_date(records, "2024-03-02")] == ["s2"]
        assert [r.session_id for r in filter_by_date(records, None, "2024-03-01")] == [
            "s1"
        ]
        assert len(filter_by_date(records, "2024-03-01", "2024-03-02")) == 2

    def test_usage_date_is_utc(self, make_record) -> "None":
        assert usage_date(make_record("s1", usage_time=DAY_TWO)) == "2024-03-02"
