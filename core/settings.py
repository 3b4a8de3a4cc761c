from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

SUPPORTED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

SQS_ENV_VARS = (
    "AWS_REGION",
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_SQS_QUEUE_URL",
)

POSITIVE_INT_ENV_VARS = {
    "WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS": 300,
    "SQS_MAX_RETRIES": 3,
    "SQS_RETRY_BASE_DELAY_SECONDS": 1,
    "SQS_MAX_REDELIVERIES": 3,
    "SQS_WAIT_TIME_SECONDS": 20,
    "SQS_VISIBILITY_TIMEOUT_SECONDS": 60,
    "PAYMENT_EXPIRY_MINUTES": 30,
    "PAYMENT_EXPIRY_SWEEP_SECONDS": 60,
}


def _split_csv(value: str | None) -> tuple[str, ...]:
    if not value:
        return tuple()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _env(name: str) -> str | None:
    raw_value = os.getenv(name)
    if raw_value is None:
        return None
    normalized = raw_value.strip()
    return normalized or None


def _env_flag(name: str, default: str = "false") -> bool:
    return (os.getenv(name, default) or "").strip().lower() in {"1", "true", "yes"}


def _env_int(name: str) -> int:
    value = _env(name)
    if value is None:
        return POSITIVE_INT_ENV_VARS[name]
    return int(value)


def collect_missing_required_env_vars() -> list[str]:
    missing: list[str] = []

    always_required = (
        "MONGO_URL",
        "DB_NAME",
        "WEBHOOK_SECRET",
    )
    for var_name in always_required:
        if _env(var_name) is None:
            missing.append(var_name)

    # Queue credentials are all-or-nothing: none means the publisher is disabled.
    configured_sqs = [name for name in SQS_ENV_VARS if _env(name) is not None]
    if configured_sqs:
        missing.extend(name for name in SQS_ENV_VARS if _env(name) is None)

    return sorted(set(missing))


def collect_invalid_env_values() -> list[str]:
    invalid_values: list[str] = []

    for var_name in POSITIVE_INT_ENV_VARS:
        raw_value = _env(var_name)
        if raw_value is None:
            continue
        try:
            parsed = int(raw_value)
            if parsed <= 0:
                raise ValueError("must be positive")
        except ValueError:
            invalid_values.append(f"{var_name} must be a positive integer")

    log_level = (_env("LOG_LEVEL") or "INFO").upper()
    if log_level not in SUPPORTED_LOG_LEVELS:
        invalid_values.append("LOG_LEVEL must be one of: " + ", ".join(sorted(SUPPORTED_LOG_LEVELS)))

    return invalid_values


def validate_required_environment() -> None:
    missing_vars = collect_missing_required_env_vars()
    invalid_values = collect_invalid_env_values()
    if not missing_vars and not invalid_values:
        return

    message_lines = ["Application startup blocked by invalid environment configuration."]
    if missing_vars:
        message_lines.append("")
        message_lines.append("Missing required environment variables:")
        message_lines.extend(f"- {name}" for name in missing_vars)
    if invalid_values:
        message_lines.append("")
        message_lines.append("Invalid environment values:")
        message_lines.extend(f"- {message}" for message in invalid_values)
    raise RuntimeError("\n".join(message_lines))


@dataclass(frozen=True)
class Settings:
    env: str
    log_level: str
    cors_origins: tuple[str, ...]
    debug_include_error_details: bool
    mongo_url: str
    db_name: str
    webhook_secret: str
    webhook_timestamp_tolerance_seconds: int
    webhook_allow_unverified_gateways: bool
    stripe_reference_metadata_key: str
    aws_region: str | None
    aws_access_key_id: str | None
    aws_secret_access_key: str | None
    sqs_queue_url: str | None
    sqs_endpoint_url: str | None
    sqs_max_retries: int
    sqs_retry_base_delay_seconds: int
    sqs_max_redeliveries: int
    sqs_wait_time_seconds: int
    sqs_visibility_timeout_seconds: int
    sqs_consumer_in_process: bool
    payment_expiry_minutes: int
    payment_expiry_sweep_seconds: int

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"

    @property
    def sqs_enabled(self) -> bool:
        return all(
            (self.aws_region, self.aws_access_key_id, self.aws_secret_access_key, self.sqs_queue_url)
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    validate_required_environment()

    return Settings(
        env=os.getenv("ENV", "development"),
        log_level=(_env("LOG_LEVEL") or "INFO").upper(),
        cors_origins=_split_csv(os.getenv("CORS_ORIGINS")),
        debug_include_error_details=_env_flag("DEBUG_INCLUDE_ERROR_DETAILS"),
        mongo_url=_env("MONGO_URL") or "",
        db_name=_env("DB_NAME") or "",
        webhook_secret=_env("WEBHOOK_SECRET") or "",
        webhook_timestamp_tolerance_seconds=_env_int("WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS"),
        webhook_allow_unverified_gateways=_env_flag("WEBHOOK_ALLOW_UNVERIFIED_GATEWAYS"),
        stripe_reference_metadata_key=_env("STRIPE_REFERENCE_METADATA_KEY") or "payment_reference",
        aws_region=_env("AWS_REGION"),
        aws_access_key_id=_env("AWS_ACCESS_KEY_ID"),
        aws_secret_access_key=_env("AWS_SECRET_ACCESS_KEY"),
        sqs_queue_url=_env("AWS_SQS_QUEUE_URL"),
        sqs_endpoint_url=_env("AWS_SQS_ENDPOINT_URL"),
        sqs_max_retries=_env_int("SQS_MAX_RETRIES"),
        sqs_retry_base_delay_seconds=_env_int("SQS_RETRY_BASE_DELAY_SECONDS"),
        sqs_max_redeliveries=_env_int("SQS_MAX_REDELIVERIES"),
        sqs_wait_time_seconds=_env_int("SQS_WAIT_TIME_SECONDS"),
        sqs_visibility_timeout_seconds=_env_int("SQS_VISIBILITY_TIMEOUT_SECONDS"),
        sqs_consumer_in_process=_env_flag("SQS_CONSUMER_IN_PROCESS", "true"),
        payment_expiry_minutes=_env_int("PAYMENT_EXPIRY_MINUTES"),
        payment_expiry_sweep_seconds=_env_int("PAYMENT_EXPIRY_SWEEP_SECONDS"),
    )
