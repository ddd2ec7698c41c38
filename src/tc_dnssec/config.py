"""
Configuration — typed, validated settings loaded from environment/.env.

Uses pydantic-settings to:
  - Load from environment variables (12-factor app)
  - Fall back to .env file
  - Validate types and constraints at startup

Only AppSettings is a BaseSettings instance. Sub-settings are plain BaseModel
classes populated via env_nested_delimiter="__", so RIAK__HOST maps to
riak.host, CRYPTO__ALGORITHM maps to crypto.algorithm, etc.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tc_dnssec.adapters.key_factory import ALGORITHMS

_ENV_FILE = Path(__file__).parent.parent.parent / ".env"


class DatabaseSettings(BaseModel):
    """
    Traffic Ops PostgreSQL connection.

    Accepts either DATABASE__DSN or the individual components; the DSN wins
    when both are provided.
    """

    dsn: SecretStr | None = Field(
        default=None,
        description="Full PostgreSQL connection string (overrides individual fields)",
    )
    host: str | None = Field(default=None, description="PostgreSQL host")
    port: int = Field(default=5432, ge=1, le=65535, description="PostgreSQL port")
    name: str | None = Field(default=None, description="PostgreSQL database name")
    username: str | None = Field(default=None, description="PostgreSQL username")
    password: SecretStr | None = Field(default=None, description="PostgreSQL password")
    connect_timeout_seconds: int = Field(default=10, ge=1)

    @model_validator(mode="after")
    def resolve_dsn(self) -> DatabaseSettings:
        """Build `dsn` from the components when it was not given directly."""
        if self.dsn is not None:
            return self
        missing = [f for f, v in [
            ("DATABASE__HOST", self.host),
            ("DATABASE__NAME", self.name),
            ("DATABASE__USERNAME", self.username),
            ("DATABASE__PASSWORD", self.password),
        ] if not v]
        if missing:
            raise ValueError("Set DATABASE__DSN or provide all of: " + ", ".join(missing))
        dsn_value = (
            f"postgresql://{self.username}:{self.password.get_secret_value()}"  # type: ignore[union-attr]
            f"@{self.host}:{self.port}/{self.name}"
        )
        object.__setattr__(self, "dsn", SecretStr(dsn_value))
        return self

    def get_dsn(self) -> str:
        assert self.dsn is not None  # guaranteed by resolve_dsn
        return self.dsn.get_secret_value()


class RiakSettings(BaseModel):
    """
    Riak cluster holding the DNSSEC bundles.

    `fallback_hosts` are `host` or `host:port` entries tried, in order,
    after the primary node fails at the transport level.
    """

    host: str = Field(description="Primary Riak node")
    port: int = Field(default=8098, ge=1, le=65535)
    tls: bool = Field(default=True)
    user: str | None = Field(default=None)
    password: SecretStr | None = Field(default=None)
    insecure: bool = Field(default=False, description="Skip TLS certificate verification")
    fallback_hosts: list[str] = Field(default_factory=list)
    retries: int = Field(default=3, ge=1)

    def nodes(self) -> list[str]:
        """Primary node first, then the fallbacks; bare hosts get the default port."""
        primary = f"{self.host}:{self.port}"
        fallbacks = [h if ":" in h else f"{h}:{self.port}" for h in self.fallback_hosts]
        return [primary, *fallbacks]

    def get_password(self) -> str | None:
        return self.password.get_secret_value() if self.password is not None else None


class CryptoSettings(BaseModel):
    """Key generation: DNSSEC algorithm, RSA modulus size and the bounded worker pool."""

    algorithm: str = Field(default="RSASHA256")
    key_size: int = Field(default=2048, ge=1024, description="RSA modulus bits")
    workers: int = Field(default=4, ge=1, le=64)

    @field_validator("algorithm")
    @classmethod
    def validate_algorithm(cls, value: str) -> str:
        name = value.strip().upper()
        if name not in ALGORITHMS:
            raise ValueError(
                f"Unsupported DNSSEC algorithm {value!r}; choose one of {', '.join(ALGORITHMS)}"
            )
        return name


class RefreshSettings(BaseModel):
    """
    Scheduled refresh of CDN keys, as a 5-field cron expression.

    A CDN is rotated when its head KSK or ZSK expires within
    `threshold_days`, or when an eligible delivery service has no keys.
    An empty `cdns` list disables the job.
    """

    cdns: list[str] = Field(default_factory=list)
    cron: str = Field(default="0 2 * * *", description="minute hour dom month dow")
    threshold_days: int = Field(default=7, ge=0)
    ttl: int = Field(default=60, ge=1)
    ksk_expiration_days: int = Field(default=365, ge=1)
    zsk_expiration_days: int = Field(default=30, ge=1)
    run_on_startup: bool = Field(default=False)

    @field_validator("cron")
    @classmethod
    def validate_cron(cls, value: str) -> str:
        """Reject expressions that don't have exactly 5 space-separated fields."""
        fields = value.strip().split()
        if len(fields) != 5:
            raise ValueError(
                f"Cron expression must have exactly 5 fields "
                f"(minute hour dom month dow), got {len(fields)}: {value!r}"
            )
        return value.strip()


class AppSettings(BaseSettings):
    """
    Root application settings.

    Load order (highest priority first):
      1. Environment variables
      2. .env file
      3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    database: DatabaseSettings
    riak: RiakSettings
    crypto: CryptoSettings = Field(default_factory=lambda: CryptoSettings())
    refresh: RefreshSettings = Field(default_factory=lambda: RefreshSettings())

    request_timeout_seconds: float = Field(default=30.0, gt=0)
    log_level: str = Field(default="INFO")
    http_host: str = Field(default="0.0.0.0")
    http_port: int = Field(default=8000, ge=1, le=65535)
