"""Client configuration for remote sync.

The configuration is an explicit object handed to the resource client rather
than read ad hoc. It is persisted as JSON under the lightnotes home directory
and can be overridden from the environment.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_RETRY_INTERVAL = 15.0
DEFAULT_FOCUS_COOLDOWN = 5.0


def default_home() -> Path:
    """Return the lightnotes home directory (``$LIGHTNOTES_HOME`` or ~/.lightnotes)."""
    env_home = os.environ.get("LIGHTNOTES_HOME")
    if env_home:
        return Path(env_home).expanduser()
    return Path.home() / ".lightnotes"


@dataclass
class ClientConfig:
    """Remote endpoint, credential and sync timings.

    ``remote_url`` and ``auth_token`` may both be empty, in which case every
    remote call fails fast with ``NotConfiguredError`` and the offline queue
    simply holds its operations.
    """

    remote_url: str = ""
    auth_token: str = ""
    timeout: float = DEFAULT_TIMEOUT
    retry_interval: float = DEFAULT_RETRY_INTERVAL
    focus_cooldown: float = DEFAULT_FOCUS_COOLDOWN
    config_file: Path | None = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        self.remote_url = (self.remote_url or "").rstrip("/")
        self.auth_token = self.auth_token or ""

    @property
    def is_configured(self) -> bool:
        """Both the endpoint and the credential are set."""
        return bool(self.remote_url and self.auth_token)

    @property
    def missing_reason(self) -> str | None:
        if not self.remote_url:
            return "API URL not set"
        if not self.auth_token:
            return "API token not set"
        return None

    def validate(self) -> tuple[bool, list[str]]:
        """Check the configuration.

        Returns:
            Tuple of (is_valid, list of error messages)
        """
        errors = []
        if not self.remote_url:
            errors.append("Remote URL is not set")
        else:
            parsed = urlparse(self.remote_url)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                errors.append(f"Remote URL must be http(s): {self.remote_url}")
        if not self.auth_token:
            errors.append("Auth token is not set")
        if self.timeout <= 0:
            errors.append("Timeout must be positive")
        if self.retry_interval <= 0:
            errors.append("Retry interval must be positive")
        return (not errors, errors)

    def setup(self, remote_url: str, auth_token: str) -> None:
        """Set endpoint and credential and persist them."""
        self.remote_url = (remote_url or "").rstrip("/")
        self.auth_token = auth_token or ""
        self.save()

    def clear(self) -> None:
        """Forget endpoint and credential."""
        self.remote_url = ""
        self.auth_token = ""
        self.save()

    @classmethod
    def load(cls, config_file: Path | None = None) -> "ClientConfig":
        """Load configuration from disk, then apply environment overrides.

        A missing or unreadable file yields an unconfigured instance.
        """
        config_file = Path(config_file or default_home() / "config.json")
        data = {}
        if config_file.exists():
            try:
                with open(config_file, "r") as f:
                    data = json.load(f)
                if not isinstance(data, dict):
                    raise ValueError("config root is not an object")
            except (json.JSONDecodeError, ValueError, OSError) as e:
                logger.error(f"Failed to load config from {config_file}: {e}")
                data = {}

        config = cls(
            remote_url=os.environ.get("LIGHTNOTES_API_URL")
            or data.get("remote_url", ""),
            auth_token=os.environ.get("LIGHTNOTES_TOKEN") or data.get("auth_token", ""),
            timeout=float(data.get("timeout", DEFAULT_TIMEOUT)),
            retry_interval=float(data.get("retry_interval", DEFAULT_RETRY_INTERVAL)),
            focus_cooldown=float(data.get("focus_cooldown", DEFAULT_FOCUS_COOLDOWN)),
            config_file=config_file,
        )
        return config

    def save(self) -> None:
        """Write configuration to its file (no-op for in-memory configs)."""
        if self.config_file is None:
            return
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "remote_url": self.remote_url,
            "auth_token": self.auth_token,
            "timeout": self.timeout,
            "retry_interval": self.retry_interval,
            "focus_cooldown": self.focus_cooldown,
        }
        with open(self.config_file, "w") as f:
            json.dump(data, f, indent=2)
        logger.debug(f"Saved config to {self.config_file}")
