"""Runtime settings loaded from the environment."""

from __future__ import annotations

import os
from functools import lru_cache


class Settings:
    """Runtime settings loaded from environment."""

    def __init__(self) -> None:
        """Load settings from environment variables."""
        self.arm_endpoint = os.getenv("ROLEWARDEN_ARM_ENDPOINT", "https://management.azure.com")
        self.graph_endpoint = os.getenv(
            "ROLEWARDEN_GRAPH_ENDPOINT", "https://graph.microsoft.com/v1.0"
        )

        # HTTP behaviour of the Azure adapters; the core never retries
        self.http_timeout_seconds = float(os.getenv("ROLEWARDEN_HTTP_TIMEOUT_SECONDS", "30"))
        self.max_attempts = int(os.getenv("ROLEWARDEN_MAX_ATTEMPTS", "5"))

        self.justification = os.getenv("ROLEWARDEN_JUSTIFICATION", "Managed by rolewarden")
        self.log_level = os.getenv("ROLEWARDEN_LOG_LEVEL", "INFO").upper()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, read once."""
    return Settings()
