"""Custom exceptions for the BudgetFlow engine.

This module provides a hierarchy of exception classes for consistent error
handling across interval arithmetic, allocation calculation and the
allocation lifecycle. All exceptions inherit from BudgetFlowError, making it
easy to catch all engine-specific errors.

Only configuration problems and lifecycle invariant violations are raised to
callers. Structural problems in a rule graph and per-rule evaluation failures
are captured as data (trace notes, ``calculation_errors``) by the engine.

Example:
    try:
        lifecycle.reactivate(interval_id)
    except ActiveIntervalConflictError as e:
        # Another interval is already ACTIVE for this income profile
        logger.warning("reactivation_refused", **e.details)
    except BudgetFlowError as e:
        # Handle any BudgetFlow-related error
        logger.error("operation_failed", error=str(e))
"""

from typing import Any, Optional


class BudgetFlowError(Exception):
    """Base exception for all BudgetFlow errors.

    This is the root of the exception hierarchy. Catching this exception
    will catch all BudgetFlow-specific errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context.
        recoverable: Whether the error is potentially recoverable.

    Example:
        >>> raise BudgetFlowError("Something went wrong", details={"rule_id": "r1"})
        BudgetFlowError: Something went wrong
    """

    def __init__(
        self,
        message: str,
        *,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        """Initialize BudgetFlowError.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional context about the error.
            recoverable: Whether the error is potentially recoverable through
                retry or correction. Defaults to False.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        """Return string representation of the error."""
        return self.message

    def __repr__(self) -> str:
        """Return detailed representation of the error."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"recoverable={self.recoverable!r})"
        )


class ConfigurationError(BudgetFlowError):
    """Error raised when an input or setting cannot be used at all.

    Configuration errors fail the specific operation immediately. They are
    never silently substituted with a default.

    Attributes:
        config_key: The setting or field that is problematic.
        expected: Description of the expected value or format.
        actual: The actual value found (if any).

    Example:
        >>> raise ConfigurationError(
        ...     "Unknown rounding mode",
        ...     config_key="rounding",
        ...     expected="up, down or nearest",
        ...     actual="sideways",
        ... )
        ConfigurationError: Unknown rounding mode
    """

    def __init__(
        self,
        message: str,
        *,
        config_key: Optional[str] = None,
        expected: Optional[str] = None,
        actual: Optional[Any] = None,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        """Initialize ConfigurationError.

        Args:
            message: Human-readable error description.
            config_key: The name of the setting or field that is problematic.
            expected: Description of what value was expected.
            actual: The actual value found.
            details: Optional dictionary with additional context.
            recoverable: Whether the error can be fixed at runtime.
                Defaults to False since the caller must correct its input.
        """
        super().__init__(message, details=details, recoverable=recoverable)
        self.config_key = config_key
        self.expected = expected
        self.actual = actual

        if config_key:
            self.details["config_key"] = config_key
        if expected:
            self.details["expected"] = expected
        if actual is not None:
            self.details["actual"] = actual


class UnsupportedCadenceError(ConfigurationError):
    """Error raised for a cadence outside the six supported frequencies.

    Example:
        >>> raise UnsupportedCadenceError("fortnightly")
        UnsupportedCadenceError: Unsupported cadence: fortnightly
    """

    def __init__(self, cadence: Any, *, details: Optional[dict[str, Any]] = None) -> None:
        """Initialize UnsupportedCadenceError.

        Args:
            cadence: The rejected cadence value.
            details: Optional dictionary with additional context.
        """
        super().__init__(
            f"Unsupported cadence: {cadence}",
            config_key="cadence",
            expected="weekly, bi-weekly, semi-monthly, monthly, quarterly or annual",
            actual=str(cadence),
            details=details,
        )
        self.cadence = cadence


class InvalidRuleValueError(ConfigurationError):
    """Error raised when a budget rule carries a value that cannot be used.

    Example:
        >>> raise InvalidRuleValueError("r1", "NaN")
        InvalidRuleValueError: Budget rule r1 has a malformed value: NaN
    """

    def __init__(
        self,
        rule_id: str,
        value: Any,
        *,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """Initialize InvalidRuleValueError.

        Args:
            rule_id: Identifier of the offending rule.
            value: The malformed value.
            details: Optional dictionary with additional context.
        """
        super().__init__(
            f"Budget rule {rule_id} has a malformed value: {value}",
            config_key="value",
            expected="A finite decimal amount or percentage",
            actual=str(value),
            details=details,
        )
        self.rule_id = rule_id
        self.details["rule_id"] = rule_id


class CalculationError(BudgetFlowError):
    """Error raised when a single budget rule cannot be evaluated.

    The allocation engine catches this error per rule and records a
    zero-amount allocation instead of aborting the batch.

    Attributes:
        rule_id: Identifier of the rule being evaluated.
        calculation_type: The calculation type of the rule (if known).
    """

    def __init__(
        self,
        message: str,
        *,
        rule_id: Optional[str] = None,
        calculation_type: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = True,
    ) -> None:
        """Initialize CalculationError.

        Args:
            message: Human-readable error description.
            rule_id: Identifier of the rule being evaluated.
            calculation_type: Calculation type of the rule.
            details: Optional dictionary with additional context.
            recoverable: Whether the rest of the batch can continue.
                Defaults to True.
        """
        super().__init__(message, details=details, recoverable=recoverable)
        self.rule_id = rule_id
        self.calculation_type = calculation_type

        if rule_id:
            self.details["rule_id"] = rule_id
        if calculation_type:
            self.details["calculation_type"] = calculation_type


class LifecycleError(BudgetFlowError):
    """Error raised when an allocation or interval transition is not allowed.

    Lifecycle errors are hard errors: the operation performs no partial
    mutation before raising.

    Attributes:
        interval_id: The interval involved (if applicable).
        allocation_id: The allocation involved (if applicable).
    """

    def __init__(
        self,
        message: str,
        *,
        interval_id: Optional[str] = None,
        allocation_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        """Initialize LifecycleError.

        Args:
            message: Human-readable error description.
            interval_id: Identifier of the interval involved.
            allocation_id: Identifier of the allocation involved.
            details: Optional dictionary with additional context.
            recoverable: Whether retrying later could succeed.
        """
        super().__init__(message, details=details, recoverable=recoverable)
        self.interval_id = interval_id
        self.allocation_id = allocation_id

        if interval_id:
            self.details["interval_id"] = interval_id
        if allocation_id:
            self.details["allocation_id"] = allocation_id


class AllocationNotFoundError(LifecycleError):
    """Error raised when an allocation id does not exist."""

    def __init__(self, allocation_id: str) -> None:
        super().__init__(
            f"Allocation not found: {allocation_id}",
            allocation_id=allocation_id,
        )


class IntervalNotFoundError(LifecycleError):
    """Error raised when an interval id does not exist."""

    def __init__(self, interval_id: str) -> None:
        super().__init__(
            f"Interval not found: {interval_id}",
            interval_id=interval_id,
        )


class ActiveIntervalConflictError(LifecycleError):
    """Error raised when a second ACTIVE interval would exist for a profile.

    At most one interval per income profile may be ACTIVE at any time.

    Attributes:
        income_profile_id: The income profile whose constraint was violated.
        existing_interval_id: The interval that is already ACTIVE.
    """

    def __init__(
        self,
        interval_id: str,
        *,
        income_profile_id: Optional[str] = None,
        existing_interval_id: Optional[str] = None,
        recoverable: bool = True,
    ) -> None:
        """Initialize ActiveIntervalConflictError.

        Args:
            interval_id: The interval that was about to become ACTIVE.
            income_profile_id: The owning income profile.
            existing_interval_id: The interval that is already ACTIVE.
            recoverable: Completing the other interval first resolves the
                conflict. Defaults to True.
        """
        super().__init__(
            "Cannot activate interval: another interval is already ACTIVE "
            "for this income profile",
            interval_id=interval_id,
            recoverable=recoverable,
        )
        self.income_profile_id = income_profile_id
        self.existing_interval_id = existing_interval_id

        if income_profile_id:
            self.details["income_profile_id"] = income_profile_id
        if existing_interval_id:
            self.details["existing_interval_id"] = existing_interval_id


class InvalidTransitionError(LifecycleError):
    """Error raised for a status transition that the state machine forbids.

    Example:
        >>> raise InvalidTransitionError("Only COMPLETED intervals can be reactivated",
        ...                              interval_id="p1")
        InvalidTransitionError: Only COMPLETED intervals can be reactivated
    """


__all__ = [
    "BudgetFlowError",
    "ConfigurationError",
    "UnsupportedCadenceError",
    "InvalidRuleValueError",
    "CalculationError",
    "LifecycleError",
    "AllocationNotFoundError",
    "IntervalNotFoundError",
    "ActiveIntervalConflictError",
    "InvalidTransitionError",
]
