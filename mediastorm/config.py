from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

BACKENDS = ("http", "s3")

# ----------------------------- Configuration classes -----------------------------


class ConfigError(ValueError):
    """Raised for settings that must stop the run before anything is sent."""


def join_url(endpoint: str, path: str) -> str:
    return endpoint + "/" + path


def _fraction(ts: datetime) -> str:
    """Fractional seconds with trailing zeros dropped, empty for a whole second."""
    digits = f"{ts.microsecond:06d}".rstrip("0")
    return "." + digits if digits else ""


def format_utc(ts: datetime) -> str:
    """``2006-01-02 15:04:05.999999 +0000 UTC``, the form Go prints a UTC time.Time in."""
    ts = ts.astimezone(timezone.utc)
    return ts.strftime("%Y-%m-%d %H:%M:%S") + _fraction(ts) + " +0000 UTC"


def default_path(now: Optional[datetime] = None) -> str:
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    stamp = now.strftime("%Y-%m-%dT%H:%M:%S") + _fraction(now) + "Z"
    return "mediastorm/" + stamp.replace(":", "-")


@dataclass(frozen=True)
class LoadSpec:
    endpoint: str
    host: Optional[str] = None
    insecure: bool = False
    path: str = field(default_factory=default_path)
    rate: float = 1.0  # operations per second
    size: int = 512  # payload bytes
    count: int = 0  # 0 means unbounded
    pool_size: int = 100
    backend: str = "http"
    bucket: Optional[str] = None
    region: Optional[str] = None
    timeout: Optional[float] = None

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if not self.endpoint:
            raise ConfigError("Non-empty endpoint is required.")
        if self.rate <= 0:
            raise ConfigError(f"rate must be positive, got {self.rate}")
        if self.size < 0:
            raise ConfigError(f"size must not be negative, got {self.size}")
        if self.count < 0:
            raise ConfigError(f"count must not be negative, got {self.count}")
        if self.pool_size < 1:
            raise ConfigError(f"pool size must be at least 1, got {self.pool_size}")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigError(f"timeout must be positive, got {self.timeout}")
        if self.backend not in BACKENDS:
            raise ConfigError(f"unknown backend {self.backend!r}, expected one of {', '.join(BACKENDS)}")
        if self.backend == "s3" and not self.bucket:
            raise ConfigError("the s3 backend requires a bucket")

    @property
    def bounded(self) -> bool:
        return self.count > 0

    @property
    def interval(self) -> float:
        return 1.0 / self.rate
