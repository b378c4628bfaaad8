import asyncio
import json
import sys
from dataclasses import asdict

import structlog
from prometheus_client import CollectorRegistry, write_to_textfile

from traeusage.cli import parse_args
from traeusage.collector import Collector
from traeusage.config import Config
from traeusage.credentials import CredentialResolver
from traeusage.errors import TraeUsageError
from traeusage.logging import setup_logging
from traeusage.metrics import MetricsUpdater
from traeusage.provider.trae import TraeProvider
from traeusage.settings import HOST_KEY, SESSION_ID_KEY, JsonFileSettings
from traeusage.storage import FileBlobStorage

logger = structlog.get_logger()


def build_collector(
    config: "Config",
    metrics_updater: "MetricsUpdater",
) -> "tuple[Collector, TraeProvider]":
    """
    wires settings, storage, provider and resolver for one process.
    """
    data_path = config.data_path
    settings = JsonFileSettings(data_path / "settings.json")
    # explicit configuration wins over what the settings file holds
    if config.session_id:
        settings.set(SESSION_ID_KEY, config.session_id)
    if config.host:
        settings.set(HOST_KEY, config.host)

    provider = TraeProvider(
        settings,
        request_timeout=config.request_timeout,
        page_timeout=config.page_timeout,
        max_attempts=config.max_retries,
        retry_delay=config.retry_delay,
    )
    resolver = CredentialResolver(
        provider,
        settings,
        max_retries=config.max_retries,
        retry_delay=config.retry_delay,
    )
    provider.on_token_expired = resolver.clear_cache

    collector = Collector(
        settings,
        resolver,
        provider,
        FileBlobStorage(data_path),
        metrics_updater,
        page_size=config.page_size,
        page_delay_seconds=config.page_delay,
    )
    return collector, provider


async def _run(
    command: "str",
    config: "Config",
    start_date: "str | None",
    end_date: "str | None",
) -> "dict":
    registry = CollectorRegistry()
    collector, provider = build_collector(config, MetricsUpdater(registry))

    try:
        if command == "collect":
            try:
                result = await collector.collect()
            finally:
                if config.metrics_textfile:
                    write_to_textfile(config.metrics_textfile, registry)
            if result is None:
                return {"status": "skipped", "reason": "no_session"}
            return {"status": "ok", **asdict(result)}

        if command == "status":
            snapshot = await collector.fetch_entitlements()
            if snapshot is None:
                return {"status": "skipped", "reason": "no_session"}
            return {
                "status": "ok",
                "is_pay_freshman": snapshot.is_pay_freshman,
                "packs": [
                    {
                        "start_time": pack.start_time,
                        "end_time": pack.end_time,
                        "active": pack.active,
                        "is_flash_consuming": pack.is_flash_consuming,
                        "quotas": [
                            {
                                "name": q.name,
                                "used": q.used,
                                "limit": q.limit,
                                "remaining": q.remaining,
                            }
                            for q in pack.quotas
                        ],
                    }
                    for pack in snapshot.packs
                ],
            }

        store = collector.get_store()
        return {
            "status": "ok",
            "last_update_time": store.last_update_time,
            "summary": collector.summarize(start_date, end_date).to_dict(),
        }
    finally:
        await provider.close()


def main() -> "None":
    command, config, args = parse_args()
    setup_logging(config.log_level, json_output=args.log_json)

    try:
        output = asyncio.run(_run(command, config, args.start_date, args.end_date))
    except TraeUsageError as exc:
        reason = getattr(exc, "reason", type(exc).__name__)
        logger.error("command_failed", command=command, reason=reason)
        json.dump({"status": "error", "reason": reason, "error": str(exc)}, sys.stdout)
        sys.stdout.write("\n")
        raise SystemExit(1)

    json.dump(output, sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")


if __name__ == "__main__":
    main()
