from traeusage.merge import MergeCounts, merge_records


class TestMergeRecords:
    def test_new_session_is_collected(self, make_record) -> "None":
        working = {}
        counts = merge_records(working, [make_record("s1")])

        assert (counts.collected, counts.updated) == (1, 0)
        assert set(working) == {"s1"}

    def test_same_usage_time_is_untouched(self, make_record) -> "None":
        original = make_record("s1", usage_time=100, amount=1.0)
        working = {"s1": original}

        counts = merge_records(working, [make_record("s1", usage_time=100, amount=9.0)])

        assert (counts.collected, counts.updated) == (0, 0)
        assert working["s1"] is original

    def test_changed_usage_time_overwrites(self, make_record) -> "None":
        working = {"s1": make_record("s1", usage_time=100)}

        counts = merge_records(working, [make_record("s1", usage_time=200)])

        assert (counts.collected, counts.updated) == (0, 1)
        assert working["s1"].usage_time == 200

    def test_counts_accumulate_across_calls(self, make_record) -> "None":
        working = {}
        counts = MergeCounts()
        merge_records(working, [make_record("s1")], counts)
        merge_records(working, [make_record("s2"), make_record("s1", 300)], counts)

        assert (counts.collected, counts.updated) == (2, 1)
        assert len(working) == 2
