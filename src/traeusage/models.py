from dataclasses import dataclass, field
from typing import Any

# label used when a record carries no mode
DEFAULT_MODE = "Normal"


@dataclass(frozen=True, slots=True)
class TokenCounts:
    input: "int" = 0
    output: "int" = 0
    cache_read: "int" = 0
    cache_write: "int" = 0


@dataclass(frozen=True, slots=True)
class UsageRecord:
    """
    UsageRecord represents one billed session as returned
    by the usage-detail endpoint. session_id is the merge key.
    """

    session_id: "str"
    # unix seconds; a change on re-fetch marks the record as updated
    usage_time: "int"
    model_name: "str"
    mode: "str"
    amount: "float"
    cost_money: "float"
    tokens: "TokenCounts" = field(default_factory=TokenCounts)
    use_max_mode: "bool" = False
    product_types: "tuple[int, ...]" = ()

    @classmethod
    def from_api(cls, raw: "dict[str, Any]") -> "UsageRecord":
        """
        builds a record from the wire shape used by both the
        remote API and the persisted store.
        """
        extra = raw.get("extra_info") or {}
        return cls(
            session_id=str(raw["session_id"]),
            usage_time=int(raw.get("usage_time", 0)),
            model_name=raw.get("model_name") or "unknown",
            mode=raw.get("mode") or "",
            amount=float(raw.get("amount_float", 0.0)),
            cost_money=float(raw.get("cost_money_float", 0.0)),
            tokens=TokenCounts(
                input=max(0, int(extra.get("input_token", 0))),
                output=max(0, int(extra.get("output_token", 0))),
                cache_read=max(0, int(extra.get("cache_read_token", 0))),
                cache_write=max(0, int(extra.get("cache_write_token", 0))),
            ),
            use_max_mode=bool(raw.get("use_max_mode", False)),
            product_types=tuple(raw.get("product_type_list") or ()),
        )

    def to_dict(self) -> "dict[str, Any]":
        return {
            "session_id": self.session_id,
            "usage_time": self.usage_time,
            "model_name": self.model_name,
            "mode": self.mode,
            "amount_float": self.amount,
            "cost_money_float": self.cost_money,
            "extra_info": {
                "input_token": self.tokens.input,
                "output_token": self.tokens.output,
                "cache_read_token": self.tokens.cache_read,
                "cache_write_token": self.tokens.cache_write,
            },
            "use_max_mode": self.use_max_mode,
            "product_type_list": list(self.product_types),
        }


@dataclass(frozen=True, slots=True)
class UsageStore:
    """
    UsageStore is the persisted system of record. It is never
    mutated; a successful collection cycle replaces it whole.
    """

    # 0 means the store has never been collected
    last_update_time: "int" = 0
    covered_start: "int" = 0
    covered_end: "int" = 0
    records: "dict[str, UsageRecord]" = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class SubscriptionWindow:
    start_time: "int"
    end_time: "int"


@dataclass(frozen=True, slots=True)
class FetchWindow:
    start_time: "int"
    end_time: "int"


@dataclass(frozen=True, slots=True)
class UsagePage:
    total: "int"
    records: "list[UsageRecord]"


@dataclass(frozen=True, slots=True)
class CollectResult:
    collected: "int"
    updated: "int"
    total: "int"
    pages: "int" = 0


@dataclass(frozen=True, slots=True)
class QuotaUsage:
    """
    QuotaUsage is one capability limit of an entitlement pack.
    A limit of -1 means unlimited.
    """

    name: "str"
    used: "float"
    limit: "float"

    @property
    def unlimited(self) -> "bool":
        return self.limit == -1

    @property
    def remaining(self) -> "float | None":
        if self.unlimited:
            return None
        return self.limit - self.used


# each tuple is (quota name, limit field, usage field)
QUOTA_FIELDS: "list[tuple[str, str, str]]" = [
    (
        "premium_fast",
        "premium_model_fast_request_limit",
        "premium_model_fast_request_usage",
    ),
    (
        "premium_slow",
        "premium_model_slow_request_limit",
        "premium_model_slow_request_usage",
    ),
    ("auto_completion", "auto_completion_limit", "auto_completion_usage"),
    (
        "advanced_model",
        "advanced_model_request_limit",
        "advanced_model_request_usage",
    ),
]


@dataclass(frozen=True, slots=True)
class EntitlementPack:
    start_time: "int"
    end_time: "int"
    # 1 active, 0 inactive
    status: "int"
    quotas: "tuple[QuotaUsage, ...]" = ()
    is_flash_consuming: "bool" = False

    @classmethod
    def from_api(cls, raw: "dict[str, Any]") -> "EntitlementPack":
        base = raw.get("entitlement_base_info") or {}
        quota = base.get("quota") or {}
        usage = raw.get("usage") or {}

        quotas = []
        for name, limit_field, usage_field in QUOTA_FIELDS:
            limit = quota.get(limit_field, 0)
            # a zero limit means the pack does not grant this capability
            if not limit:
                continue
            quotas.append(
                QuotaUsage(name=name, used=usage.get(usage_field, 0), limit=limit)
            )

        return cls(
            start_time=int(base.get("start_time", 0)),
            end_time=int(base.get("end_time", 0)),
            status=int(raw.get("status", 0)),
            quotas=tuple(quotas),
            is_flash_consuming=bool(usage.get("is_flash_consuming", False)),
        )

    @property
    def active(self) -> "bool":
        return self.status == 1


@dataclass(frozen=True, slots=True)
class EntitlementSnapshot:
    packs: "tuple[EntitlementPack, ...]" = ()
    is_pay_freshman: "bool" = False

    def window(self) -> "SubscriptionWindow | None":
        """
        returns the first pack's validity window, or None when
        no pack is present.
        """
        if not self.packs:
            return None
        pack = self.packs[0]
        return SubscriptionWindow(start_time=pack.start_time, end_time=pack.end_time)


@dataclass(frozen=True, slots=True)
class ModelStats:
    count: "int" = 0
    amount: "float" = 0.0
    cost: "float" = 0.0
    input_tokens: "int" = 0
    output_tokens: "int" = 0
    cache_read_tokens: "int" = 0
    cache_write_tokens: "int" = 0


@dataclass(frozen=True, slots=True)
class ModeStats:
    count: "int" = 0
    amount: "float" = 0.0
    cost: "float" = 0.0


@dataclass(frozen=True, slots=True)
class DayStats:
    count: "int" = 0
    amount: "float" = 0.0
    cost: "float" = 0.0
    models: "frozenset[str]" = frozenset()


@dataclass(frozen=True, slots=True)
class Summary:
    """
    Summary is derived from the store's records and never persisted.
    Map ordering carries no meaning; to_dict() applies the display
    ordering.
    """

    total_amount: "float" = 0.0
    total_cost: "float" = 0.0
    total_sessions: "int" = 0
    per_model: "dict[str, ModelStats]" = field(default_factory=dict)
    per_mode: "dict[str, ModeStats]" = field(default_factory=dict)
    per_day: "dict[str, DayStats]" = field(default_factory=dict)

    def to_dict(self) -> "dict[str, Any]":
        models = sorted(self.per_model.items(), key=lambda kv: kv[1].amount, reverse=True)
        modes = sorted(self.per_mode.items(), key=lambda kv: kv[1].amount, reverse=True)
        days = sorted(self.per_day.items(), reverse=True)
        return {
            "total_amount": self.total_amount,
            "total_cost": self.total_cost,
            "total_sessions": self.total_sessions,
            "per_model": {
                name: {
                    "count": s.count,
                    "amount": s.amount,
                    "cost": s.cost,
                    "input_tokens": s.input_tokens,
                    "output_tokens": s.output_tokens,
                    "cache_read_tokens": s.cache_read_tokens,
                    "cache_write_tokens": s.cache_write_tokens,
                }
                for name, s in models
            },
            "per_mode": {
                mode: {"count": s.count, "amount": s.amount, "cost": s.cost}
                for mode, s in modes
            },
            "per_day": {
                day: {
                    "count": s.count,
                    "amount": s.amount,
                    "cost": s.cost,
                    "models": sorted(s.models),
                }
                for day, s in days
            },
        }
