from datetime import datetime, timezone
from typing import Iterable

from traeusage.models import (
    DEFAULT_MODE,
    DayStats,
    ModelStats,
    ModeStats,
    Summary,
    UsageRecord,
)


def usage_date(record: "UsageRecord") -> "str":
    """
    returns the record's UTC calendar date as YYYY-MM-DD.
    """
    return datetime.fromtimestamp(record.usage_time, tz=timezone.utc).date().isoformat()


def filter_by_date(
    records: "Iterable[UsageRecord]",
    start_date: "str | None" = None,
    end_date: "str | None" = None,
) -> "list[UsageRecord]":
    """
    keeps records whose UTC date lies within [start_date, end_date].
    Both bounds are inclusive ISO dates and either may be omitted.
    """
    records = list(records)
    if not start_date and not end_date:
        return records

    kept = []
    for record in records:
        day = usage_date(record)
        if start_date and day < start_date:
            continue
        if end_date and day > end_date:
            continue
        kept.append(record)
    return kept


def summarize(records: "Iterable[UsageRecord]") -> "Summary":
    total_amount = 0.0
    total_cost = 0.0
    total_sessions = 0
    # mutable accumulators, frozen into stats objects at the end
    models: "dict[str, list]" = {}
    modes: "dict[str, list]" = {}
    days: "dict[str, list]" = {}

    for record in records:
        total_amount += record.amount
        total_cost += record.cost_money
        total_sessions += 1

        m = models.setdefault(record.model_name, [0, 0.0, 0.0, 0, 0, 0, 0])
        m[0] += 1
        m[1] += record.amount
        m[2] += record.cost_money
        m[3] += record.tokens.input
        m[4] += record.tokens.output
        m[5] += record.tokens.cache_read
        m[6] += record.tokens.cache_write

        mode = modes.setdefault(record.mode or DEFAULT_MODE, [0, 0.0, 0.0])
        mode[0] += 1
        mode[1] += record.amount
        mode[2] += record.cost_money

        d = days.setdefault(usage_date(record), [0, 0.0, 0.0, set()])
        d[0] += 1
        d[1] += record.amount
        d[2] += record.cost_money
        d[3].add(record.model_name)

    return Summary(
        total_amount=total_amount,
        total_cost=total_cost,
        total_sessions=total_sessions,
        per_model={name: ModelStats(*acc) for name, acc in models.items()},
        per_mode={name: ModeStats(*acc) for name, acc in modes.items()},
        per_day={
            day: DayStats(acc[0], acc[1], acc[2], frozenset(acc[3]))
            for day, acc in days.items()
        },
    )
