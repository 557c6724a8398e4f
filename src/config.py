# config.py
import os
from dataclasses import dataclass

from src.errors import ConfigurationError


REGION_BASE_URLS = {
    "us-1": "https://api.crowdstrike.com",
    "us-2": "https://api.us-2.crowdstrike.com",
    "eu-1": "https://api.eu-1.crowdstrike.com",
    "us-gov-1": "https://api.laggar.gcw.crowdstrike.com",
}
DEFAULT_REGION = "us-1"
DEFAULT_REQUEST_TIMEOUT = 30.0


@dataclass(frozen=True)
class FalconConfig:
    client_id: str
    client_secret: str
    base_url: str = REGION_BASE_URLS[DEFAULT_REGION]
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    @classmethod
    def from_env(cls) -> "FalconConfig":
        """
        Build the configuration from environment variables.
        - FALCON_CLIENT_ID and FALCON_CLIENT_SECRET are required.
        - FALCON_BASE_URL wins over FALCON_REGION when both are set.
        """
        client_id = (os.getenv("FALCON_CLIENT_ID") or "").strip()
        client_secret = (os.getenv("FALCON_CLIENT_SECRET") or "").strip()
        if not client_id or not client_secret:
            raise ConfigurationError(
                "FALCON_CLIENT_ID and FALCON_CLIENT_SECRET environment variables must be set"
            )

        base_url = (os.getenv("FALCON_BASE_URL") or "").strip()
        if not base_url:
            region = (os.getenv("FALCON_REGION") or DEFAULT_REGION).strip().lower()
            if region not in REGION_BASE_URLS:
                raise ConfigurationError(
                    f"Unknown FALCON_REGION '{region}'. Expected one of: {', '.join(REGION_BASE_URLS)}"
                )
            base_url = REGION_BASE_URLS[region]

        raw_timeout = os.getenv("FALCON_REQUEST_TIMEOUT") or str(DEFAULT_REQUEST_TIMEOUT)
        try:
            timeout = float(raw_timeout)
        except ValueError:
            raise ConfigurationError(f"FALCON_REQUEST_TIMEOUT must be a number, got '{raw_timeout}'")
        if timeout <= 0:
            raise ConfigurationError("FALCON_REQUEST_TIMEOUT must be greater than zero")

        return cls(
            client_id=client_id,
            client_secret=client_secret,
            base_url=base_url.rstrip("/"),
            request_timeout=timeout,
        )
