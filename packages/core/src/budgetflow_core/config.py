"""Configuration system for BudgetFlow.

Calculation policy is an explicit value passed into every engine call;
there is no process-wide default that calls can mutate. The environment
loaded settings only *produce* such values.

Usage:
    from budgetflow_core.config import BudgetFlowConfig, EngineConfig

    # Load from environment variables and .env file
    config = BudgetFlowConfig()
    engine = AllocationEngine(config.engine)

    # Or build a policy directly
    engine = AllocationEngine(EngineConfig(rounding="down", precision_decimals=0))
"""

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RoundingMode(str, Enum):
    """Rounding policies applied to every computed amount."""

    UP = "up"
    DOWN = "down"
    NEAREST = "nearest"


class LogFormat(str, Enum):
    """Supported log renderers."""

    CONSOLE = "console"
    JSON = "json"


class EngineConfig(BaseModel):
    """Allocation engine calculation policy.

    Attributes:
        enable_pro_rating: Scale amounts when a rule's cadence differs from
            the income cadence.
        rounding: Rounding mode applied before negative amounts are clamped.
        precision_decimals: Number of decimal places kept after rounding.
        max_iterations: Upper bound on dependency resolution passes.
    """

    model_config = ConfigDict(frozen=True)

    enable_pro_rating: bool = Field(
        default=True,
        description="Pro-rate rule amounts across cadence mismatches",
    )
    rounding: RoundingMode = Field(
        default=RoundingMode.NEAREST,
        description="Rounding mode for computed amounts",
    )
    precision_decimals: int = Field(
        default=2,
        ge=0,
        le=6,
        description="Decimal places kept after rounding",
    )
    max_iterations: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Maximum dependency resolution passes",
    )

    @field_validator("rounding", mode="before")
    @classmethod
    def normalize_rounding(cls, v):
        """Accept rounding modes case-insensitively."""
        if isinstance(v, str):
            return v.lower().strip()
        return v


class ReconciliationThresholds(BaseModel):
    """Variance thresholds, in percent of expected net income.

    An absolute variance percentage at or below ``perfect_pct`` is PERFECT,
    at or below ``minor_pct`` is MINOR, anything larger is MAJOR.
    """

    model_config = ConfigDict(frozen=True)

    perfect_pct: Decimal = Field(
        default=Decimal("1.0"),
        ge=0,
        description="Largest variance percentage still reported as perfect",
    )
    minor_pct: Decimal = Field(
        default=Decimal("5.0"),
        ge=0,
        description="Largest variance percentage still reported as minor",
    )

    @model_validator(mode="after")
    def check_ordering(self) -> "ReconciliationThresholds":
        """The minor threshold can never be tighter than the perfect one."""
        if self.minor_pct < self.perfect_pct:
            raise ValueError("minor_pct must be greater than or equal to perfect_pct")
        return self


class BudgetFlowConfig(BaseSettings):
    """Root configuration for BudgetFlow.

    Supports loading from environment variables and .env files. Nested
    values use a double underscore delimiter.

    Environment Variables:
        BUDGETFLOW_ENV: Environment name (development, staging, production, test)
        BUDGETFLOW_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        BUDGETFLOW_LOG_FORMAT: Log renderer (console, json)
        BUDGETFLOW_ENGINE__ROUNDING: Rounding mode (up, down, nearest)
        BUDGETFLOW_ENGINE__PRECISION_DECIMALS: Decimal places kept
        BUDGETFLOW_ENGINE__ENABLE_PRO_RATING: Toggle cadence pro-rating
        BUDGETFLOW_ENGINE__MAX_ITERATIONS: Dependency resolution pass cap
        BUDGETFLOW_RECONCILIATION__PERFECT_PCT: Perfect variance threshold
        BUDGETFLOW_RECONCILIATION__MINOR_PCT: Minor variance threshold

    Example:
        config = BudgetFlowConfig(engine=EngineConfig(rounding="up"))
        if config.is_debug:
            print(f"Rounding: {config.engine.rounding.value}")
    """

    model_config = SettingsConfigDict(
        env_prefix="BUDGETFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Environment settings
    env: str = Field(
        default="development",
        description="Environment name (development, staging, production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: LogFormat = Field(
        default=LogFormat.CONSOLE,
        description="Log renderer",
    )

    # Nested configuration
    engine: EngineConfig = Field(default_factory=EngineConfig)
    reconciliation: ReconciliationThresholds = Field(
        default_factory=ReconciliationThresholds
    )

    @field_validator("env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment name."""
        valid_envs = {"development", "staging", "production", "test"}
        v_lower = v.lower().strip()
        if v_lower not in valid_envs:
            raise ValueError(f"Invalid environment: {v}. Must be one of: {valid_envs}")
        return v_lower

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper().strip()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of: {valid_levels}")
        return v_upper

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.env == "production"

    @property
    def is_debug(self) -> bool:
        """Check if debug logging is enabled."""
        return self.log_level == "DEBUG"
