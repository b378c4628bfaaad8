import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_HOST = "https://api-sg-central.trae.ai"
FALLBACK_HOST = "https://api-us-east.trae.ai"


@dataclass
class Config:
    # session cookie value; empty means nothing to collect
    session_id: "str" = ""
    # empty keeps whatever host the settings store already holds
    host: "str" = ""
    data_dir: "str" = "~/.traeusage"
    log_level: "str" = "info"
    metrics_textfile: "str" = ""

    page_size: "int" = 50
    max_retries: "int" = 5
    # seconds
    retry_delay: "float" = 1.0
    page_delay: "float" = 1.0
    request_timeout: "float" = 3.0
    page_timeout: "float" = 10.0

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            session_id=os.environ.get("TRAE_SESSION_ID", ""),
            host=os.environ.get("TRAE_HOST", ""),
            data_dir=os.environ.get("TRAEUSAGE_DATA_DIR", "~/.traeusage"),
        )

    @property
    def data_path(self) -> "Path":
        return Path(self.data_dir).expanduser()
