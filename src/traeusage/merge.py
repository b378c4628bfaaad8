from dataclasses import dataclass
from typing import Iterable

from traeusage.models import UsageRecord


@dataclass
class MergeCounts:
    collected: "int" = 0
    updated: "int" = 0


def merge_records(
    working: "dict[str, UsageRecord]",
    fetched: "Iterable[UsageRecord]",
    counts: "MergeCounts | None" = None,
) -> "MergeCounts":
    """
    merges fetched records into the working copy in iteration order,
    keyed by session_id:
     - unseen session_id: inserted, counted as collected.
     - known session_id with a different usage_time: overwritten,
     counted as updated.
     - known session_id with the same usage_time: left untouched.
    """
    if counts is None:
        counts = MergeCounts()

    for record in fetched:
        existing = working.get(record.session_id)
        if existing is None:
            working[record.session_id] = record
            counts.collected += 1
        elif existing.usage_time != record.usage_time:
            working[record.session_id] = record
            counts.updated += 1

    return counts
