import argparse

from traeusage.config import Config

COMMANDS = ("collect", "summary", "status")


def parse_args(argv: "list[str] | None" = None) -> "tuple[str, Config, argparse.Namespace]":
    parser = argparse.ArgumentParser(
        prog="traeusage",
        description="Trae usage quota monitor",
    )
    parser.add_argument(
        "command",
        choices=COMMANDS,
        help="collect new usage records, print a summary or show quota status",
    )
    parser.add_argument(
        "--data.dir",
        dest="data_dir",
        default=None,
        help="Directory holding settings and the usage store (default: ~/.traeusage)",
    )
    parser.add_argument(
        "--log.level",
        dest="log_level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )
    parser.add_argument(
        "--log.json",
        dest="log_json",
        action="store_true",
        help="Render log lines as JSON",
    )
    parser.add_argument(
        "--metrics.textfile",
        dest="metrics_textfile",
        default="",
        help="Write Prometheus metrics to this file after collecting",
    )
    parser.add_argument(
        "--from",
        dest="start_date",
        default=None,
        help="Summary start date, inclusive (YYYY-MM-DD)",
    )
    parser.add_argument(
        "--to",
        dest="end_date",
        default=None,
        help="Summary end date, inclusive (YYYY-MM-DD)",
    )

    args = parser.parse_args(argv)
    config = Config.from_env()
    if args.data_dir:
        config.data_dir = args.data_dir
    config.log_level = args.log_level
    config.metrics_textfile = args.metrics_textfile
    return args.command, config, args
