"""Device Gateway Configuration."""

import secrets
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Server
    server_name: str = "Device Gateway"
    host: str = "0.0.0.0"
    port: int = 3001
    debug: bool = False
    log_level: str = "INFO"
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Paths
    data_dir: Path = Path.home() / "device-gateway" / "data"

    # Database (users + access requests)
    db_path: Path = Path.home() / "device-gateway" / "data" / "gateway.db"

    # Device registry snapshot
    registry_path: Path = Path.home() / "device-gateway" / "data" / "devices.json"

    # JWT
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 1440  # 24 hours

    # Seed admin account
    admin_email: str = "admin@example.com"
    admin_name: str = "System Administrator"
    admin_password: str = "admin123"

    # Request throttling (per client address)
    rate_limit_requests: int = 100  # any /api request
    rate_limit_window_seconds: int = 900  # 15 minutes
    auth_max_attempts: int = 5  # login + access requests
    auth_window_seconds: int = 900
    block_suspicious_requests: bool = True

    # Devices
    device_port: int = 5000
    candidate_addresses: list[str] = []  # overlay addresses probed by discovery
    auto_discovery: bool = True
    discovery_interval: float = 30.0  # seconds
    health_check_multiplier: int = 2  # health check runs every N discovery periods
    probe_timeout: float = 3.0
    health_check_timeout: float = 5.0
    forward_timeout: float = 5.0

    model_config = {"env_prefix": "GATEWAY_"}

    @field_validator("discovery_interval", "probe_timeout", "health_check_timeout", "forward_timeout")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator(
        "health_check_multiplier",
        "rate_limit_requests",
        "rate_limit_window_seconds",
        "auth_max_attempts",
        "auth_window_seconds",
    )
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    def ensure_dirs(self) -> None:
        """Create all required directories."""
        for d in [self.data_dir, self.db_path.parent, self.registry_path.parent]:
            d.mkdir(parents=True, exist_ok=True)

    def ensure_secrets(self) -> None:
        """Generate the JWT secret if not set, persist it so tokens survive restarts."""
        secrets_file = self.data_dir / ".secrets"
        saved = {}
        if secrets_file.exists():
            for line in secrets_file.read_text().strip().splitlines():
                if "=" in line:
                    k, v = line.split("=", 1)
                    saved[k.strip()] = v.strip()

        if not self.jwt_secret:
            self.jwt_secret = saved.get("jwt_secret", "") or secrets.token_urlsafe(32)

        secrets_file.write_text(f"jwt_secret={self.jwt_secret}\n")


settings = Settings()
settings.ensure_dirs()
settings.ensure_secrets()
