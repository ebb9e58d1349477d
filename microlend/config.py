"""Configuration management for microlend."""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from microlend.exceptions import ConfigurationError
from microlend.models.lending.enums import MaterializationVariant


@dataclass
class PolicyConfig:
    """Rate and fee policy constants."""

    base_annual_rate: Decimal = Decimal("0.20")
    repeat_annual_rate: Decimal = Decimal("0.18")
    repeat_client_threshold: int = 3  # prior loans before the repeat discount applies
    initiation_fee_rate: Decimal = Decimal("0.15")
    monthly_admin_fee: Decimal = Decimal("60.00")
    first_payment_offset_days: int = 30


@dataclass
class LedgerConfig:
    """Ledger replay and portfolio ratio thresholds."""

    max_months: int = 120
    accrual_threshold: Decimal = Decimal("0.01")
    arrears_threshold: Decimal = Decimal("10")
    credit_loss_arrears_ratio: Decimal = Decimal("0.15")


@dataclass
class KafkaConfig:
    """Kafka producer configuration."""

    bootstrap_servers: str = "localhost:9092"
    acks: str = "all"
    batch_size: int = 16384
    linger_ms: int = 5
    compression: str = "snappy"
    retries: int = 3
    topic_prefix: str = "dev.lending"

    def to_dict(self) -> dict[str, Any]:
        """Convert to confluent-kafka config dict."""
        return {
            "bootstrap.servers": self.bootstrap_servers,
            "acks": self.acks,
            "batch.size": self.batch_size,
            "linger.ms": self.linger_ms,
            "compression.type": self.compression,
            "retries": self.retries,
        }


@dataclass
class PostgresConfig:
    """PostgreSQL connection configuration."""

    host: str = "localhost"
    port: int = 5432
    database: str = "microlend"
    user: str = "postgres"
    password: str = "postgres"

    @property
    def connection_string(self) -> str:
        """Get connection string."""
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"


@dataclass
class OutputConfig:
    """Export configuration."""

    json_output_dir: Path = field(default_factory=lambda: Path("output"))
    pretty_json: bool = False


@dataclass
class MicrolendConfig:
    """Main configuration for microlend."""

    policy: PolicyConfig = field(default_factory=PolicyConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    postgres: PostgresConfig = field(default_factory=PostgresConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    materialization_variant: MaterializationVariant = MaterializationVariant.CONTRACT_TOTAL
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "MicrolendConfig":
        """Create config from environment variables."""
        import os

        defaults = PolicyConfig()
        policy = PolicyConfig(
            base_annual_rate=_env_decimal("MICROLEND_BASE_RATE", defaults.base_annual_rate),
            repeat_annual_rate=_env_decimal("MICROLEND_REPEAT_RATE", defaults.repeat_annual_rate),
            repeat_client_threshold=_env_int(
                "MICROLEND_REPEAT_THRESHOLD", defaults.repeat_client_threshold
            ),
            initiation_fee_rate=_env_decimal(
                "MICROLEND_INITIATION_FEE_RATE", defaults.initiation_fee_rate
            ),
            monthly_admin_fee=_env_decimal("MICROLEND_ADMIN_FEE", defaults.monthly_admin_fee),
            first_payment_offset_days=_env_int(
                "MICROLEND_FIRST_PAYMENT_OFFSET_DAYS", defaults.first_payment_offset_days
            ),
        )

        ledger = LedgerConfig(
            max_months=_env_int("MICROLEND_LEDGER_MAX_MONTHS", LedgerConfig.max_months),
        )

        kafka = KafkaConfig(
            bootstrap_servers=os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092"),
            acks=os.getenv("KAFKA_ACKS", "all"),
            topic_prefix=os.getenv("TOPIC_PREFIX", "dev.lending"),
        )

        postgres = PostgresConfig(
            host=os.getenv("POSTGRES_HOST", "localhost"),
            port=_env_int("POSTGRES_PORT", 5432),
            database=os.getenv("POSTGRES_DB", "microlend"),
            user=os.getenv("POSTGRES_USER", "postgres"),
            password=os.getenv("POSTGRES_PASSWORD", "postgres"),
        )

        output = OutputConfig(
            json_output_dir=Path(os.getenv("OUTPUT_DIR", "output")),
            pretty_json=os.getenv("PRETTY_JSON", "false").lower() == "true",
        )

        variant_name = os.getenv("MATERIALIZATION_VARIANT", MaterializationVariant.CONTRACT_TOTAL.value)
        try:
            variant = MaterializationVariant(variant_name.upper())
        except ValueError as exc:
            raise ConfigurationError(f"Unknown materialization variant: {variant_name}") from exc

        return cls(
            policy=policy,
            ledger=ledger,
            kafka=kafka,
            postgres=postgres,
            output=output,
            materialization_variant=variant,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


def _env_decimal(name: str, default: Decimal) -> Decimal:
    import os

    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return Decimal(raw)
    except InvalidOperation as exc:
        raise ConfigurationError(f"{name} must be a decimal number, got {raw!r}") from exc


def _env_int(name: str, default: int) -> int:
    import os

    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc
