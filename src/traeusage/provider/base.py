from typing import Protocol

from traeusage.models import EntitlementSnapshot, SubscriptionWindow, UsagePage


class UsageProvider(Protocol):
    """
    UsageProvider stands as the protocol the credential resolver
    and the collector rely on to talk to the billing API.

    exchange_token raises AuthError or NetworkError and leaves
    retries to the caller. The remaining calls retry internally;
    get_subscription_window and fetch_page report exhausted
    failures as None instead of raising.
    """

    async def exchange_token(self, session_id: "str", host: "str") -> "str": ...

    async def get_entitlements(self, token: "str") -> "EntitlementSnapshot": ...

    async def get_subscription_window(
        self,
        token: "str",
    ) -> "SubscriptionWindow | None": ...

    async def fetch_page(
        self,
        token: "str",
        start_time: "int",
        end_time: "int",
        page_num: "int",
        page_size: "int",
    ) -> "UsagePage | None": ...

    async def close(self) -> "None": ...
