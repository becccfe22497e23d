"""
Configuration management with environment variable support and validation.

Design principles:
- Environment-specific configs (dev, staging, prod)
- Validation at startup (fail fast)
- Type safety with Pydantic
- Rule thresholds are data, not code
"""

import logging
import os
from functools import lru_cache
from typing import Literal, cast

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator
from structlog.types import Processor

# Load environment variables from .env file
load_dotenv()

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

# Processors shared by every renderer
STRUCTLOG_PROCESSORS: list[Processor] = [
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
]


class RuleThresholds(BaseModel):
    """Physiological limits used by the built-in rule evaluators."""

    heart_rate_max: float = Field(default=100.0, description="Beats per minute")
    systolic_max: float = Field(default=180.0, description="mmHg")
    systolic_min: float = Field(default=90.0, description="mmHg")
    diastolic_max: float = Field(default=120.0, description="mmHg")
    diastolic_min: float = Field(default=60.0, description="mmHg")

    trend_delta: float = Field(
        default=10.0, gt=0.0, description="Consecutive change that counts toward a trend"
    )
    trend_length: int = Field(
        default=3, ge=2, description="Number of same-category readings forming a trend"
    )

    saturation_min: float = Field(default=92.0, ge=0.0, le=100.0, description="Percent")
    saturation_drop: float = Field(
        default=5.0, gt=0.0, description="Net drop within the window that raises an alert"
    )
    saturation_window_ms: int = Field(
        default=600_000, gt=0, description="Trailing window for rapid drop detection"
    )

    ecg_max: float = Field(default=1.5, description="Millivolts")

    @model_validator(mode="after")
    def ordered_ranges(self) -> "RuleThresholds":
        if self.systolic_min >= self.systolic_max:
            raise ValueError("systolic_min must be below systolic_max")
        if self.diastolic_min >= self.diastolic_max:
            raise ValueError("diastolic_min must be below diastolic_max")
        return self


class EngineConfig(BaseModel):
    """Alert evaluation engine configuration."""

    max_concurrent_evaluations: int = Field(
        default=4, gt=0, description="Worker threads used by evaluate_all"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(default="INFO", description="Logging level")
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    rules: RuleThresholds = Field(default_factory=RuleThresholds)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> LogLevel:
        v = val.strip().upper()
        return cast(
            LogLevel,
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    defaults = RuleThresholds()
    rules = RuleThresholds(
        heart_rate_max=float(os.getenv("HEART_RATE_MAX", str(defaults.heart_rate_max))),
        saturation_min=float(os.getenv("SATURATION_MIN", str(defaults.saturation_min))),
        saturation_drop=float(os.getenv("SATURATION_DROP", str(defaults.saturation_drop))),
        saturation_window_ms=int(
            os.getenv("SATURATION_WINDOW_MS", str(defaults.saturation_window_ms))
        ),
        trend_delta=float(os.getenv("TREND_DELTA", str(defaults.trend_delta))),
        ecg_max=float(os.getenv("ECG_MAX", str(defaults.ecg_max))),
    )

    engine = EngineConfig(
        max_concurrent_evaluations=int(os.getenv("MAX_CONCURRENT_EVALUATIONS", "4")),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        rules=rules,
        engine=engine,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def configure_logging(config: LoggingConfig | None = None) -> None:
    """Route structlog through the stdlib logger at the configured level."""
    config = config or LoggingConfig()

    renderer: Processor
    if config.format == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[*STRUCTLOG_PROCESSORS, renderer],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
    logging.basicConfig(format="%(message)s")
    logging.getLogger().setLevel(config.level)
