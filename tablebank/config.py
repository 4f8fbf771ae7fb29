"""Configuration management for tablebank."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Mapping

from tablebank.exceptions import ConfigurationError
from tablebank.models.enums import AccrualStrategy


def _decimal_setting(name: str, value: Any) -> Decimal:
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ConfigurationError(f"Setting {name} is not a number: {value!r}") from e
    if not result.is_finite():
        raise ConfigurationError(f"Setting {name} is not a number: {value!r}")
    return result


@dataclass
class LedgerConfig:
    """Group lending settings, resolved once per request and passed explicitly."""

    max_loan_multiplier: Decimal = Decimal("3")
    default_interest_rate: Decimal = Decimal("10")  # annual percent
    registration_fee_amount: Decimal = Decimal("0")
    default_fine_amount: Decimal = Decimal("0")
    accrual_strategy: AccrualStrategy = AccrualStrategy.CONTINUOUS_ACCRUAL
    days_in_year: int = 365
    fixed_term_months: int = 3
    fixed_term_monthly_rate_percent: Decimal = Decimal("10")
    reject_overpayment: bool = False

    def validate(self) -> "LedgerConfig":
        """Check the settings and return self.

        Raises
        ------
        ConfigurationError
            If any setting is out of range.
        """
        if self.max_loan_multiplier <= 0:
            raise ConfigurationError("max_loan_multiplier must be positive")
        if self.default_interest_rate < 0:
            raise ConfigurationError("default_interest_rate must not be negative")
        if self.registration_fee_amount < 0 or self.default_fine_amount < 0:
            raise ConfigurationError("fee and fine amounts must not be negative")
        if self.days_in_year <= 0:
            raise ConfigurationError("days_in_year must be positive")
        if self.fixed_term_months <= 0:
            raise ConfigurationError("fixed_term_months must be positive")
        if self.fixed_term_monthly_rate_percent < 0:
            raise ConfigurationError("fixed_term_monthly_rate_percent must not be negative")
        return self

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> "LedgerConfig":
        """Create config from the key/value settings table.

        Unknown keys are ignored; missing or ``None`` values keep defaults.
        """
        kwargs: dict[str, Any] = {}
        for key in (
            "max_loan_multiplier",
            "default_interest_rate",
            "registration_fee_amount",
            "default_fine_amount",
        ):
            value = settings.get(key)
            if value is not None and value != "":
                kwargs[key] = _decimal_setting(key, value)

        strategy = settings.get("accrual_strategy")
        if strategy:
            try:
                kwargs["accrual_strategy"] = AccrualStrategy(str(strategy).upper())
            except ValueError as e:
                raise ConfigurationError(f"Unknown accrual strategy: {strategy!r}") from e

        return cls(**kwargs).validate()


@dataclass
class KafkaConfig:
    """Kafka producer configuration."""

    bootstrap_servers: str = "localhost:9092"
    acks: str = "all"
    batch_size: int = 16384
    linger_ms: int = 5
    compression: str = "snappy"
    retries: int = 3
    topic_prefix: str = "tablebank"

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
    database: str = "tablebank"
    user: str = "postgres"
    password: str = "postgres"

    @property
    def connection_string(self) -> str:
        """Get connection string."""
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"


@dataclass
class OutputConfig:
    """Output configuration."""

    json_output_dir: Path = field(default_factory=lambda: Path("output"))
    pretty_json: bool = False


@dataclass
class TableBankConfig:
    """Main configuration for tablebank."""

    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    postgres: PostgresConfig = field(default_factory=PostgresConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    seed: int | None = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "TableBankConfig":
        """Create config from environment variables."""
        import os

        settings = {
            "max_loan_multiplier": os.getenv("MAX_LOAN_MULTIPLIER"),
            "default_interest_rate": os.getenv("DEFAULT_INTEREST_RATE"),
            "registration_fee_amount": os.getenv("REGISTRATION_FEE_AMOUNT"),
            "default_fine_amount": os.getenv("DEFAULT_FINE_AMOUNT"),
            "accrual_strategy": os.getenv("ACCRUAL_STRATEGY"),
        }
        ledger = LedgerConfig.from_settings(settings)
        ledger.reject_overpayment = os.getenv("REJECT_OVERPAYMENT", "false").lower() == "true"

        kafka = KafkaConfig(
            bootstrap_servers=os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092"),
            acks=os.getenv("KAFKA_ACKS", "all"),
            topic_prefix=os.getenv("TOPIC_PREFIX", "tablebank"),
        )

        postgres = PostgresConfig(
            host=os.getenv("POSTGRES_HOST", "localhost"),
            port=int(os.getenv("POSTGRES_PORT", "5432")),
            database=os.getenv("POSTGRES_DB", "tablebank"),
            user=os.getenv("POSTGRES_USER", "postgres"),
            password=os.getenv("POSTGRES_PASSWORD", "postgres"),
        )

        output = OutputConfig(
            json_output_dir=Path(os.getenv("OUTPUT_DIR", "output")),
            pretty_json=os.getenv("PRETTY_JSON", "false").lower() == "true",
        )

        return cls(
            ledger=ledger,
            kafka=kafka,
            postgres=postgres,
            output=output,
            seed=int(os.getenv("SEED")) if os.getenv("SEED") else None,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
