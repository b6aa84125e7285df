"""
provisioner.core.exceptions - Custom Exception Hierarchy
==========================================================

Structured exceptions for the provisioner. Components raise and catch specific
types that carry context instead of relying on exit codes or generic errors.

Exception Hierarchy:
    ProvisionerError (base)
        ├── ConfigurationError          - invalid settings or step list
        ├── StateError                  - state file read/write/validation failures
        ├── ProviderError               - a provider call failed
        │     ├── ResourceNotFoundError - describe/delete target does not exist
        │     └── PermissionDeniedError - caller lacks the permission
        ├── PreconditionError           - required state missing (operator must act)
        ├── AddressRangeConflictError   - connector range already in use
        ├── VerificationError           - post-deploy check failed
        ├── UnsupportedContextError     - wrong interpreter / missing CLI
        └── StepError                   - a provisioning step failed (wraps cause)

Error Handling Flow:
    Provider raises ResourceNotFoundError
        → Reconciler.exists() treats it as "absent"
        → Reconciler destructive delete downgrades it to a log line
    Provider raises any other ProviderError during create/describe
        → Step wraps it in StepError
        → PipelineEngine records the failure and stops
        → CLI prints the diagnostic (and hint) to stderr, exits 1

Usage:
    >>> raise PreconditionError(
    ...     message="SQL_USER_PASSWORD is not set for the existing instance",
    ...     key="SQL_USER_PASSWORD",
    ...     hint="Add SQL_USER_PASSWORD='...' to .env and re-run.",
    ... )
"""

from __future__ import annotations

from typing import Any, Optional


# =============================================================================
# Base Exception
# =============================================================================
class ProvisionerError(Exception):
    """Base exception for all provisioner errors.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable code, UPPER_SNAKE_CASE.
        details: Additional debugging context.
        hint: Optional remediation the operator can act on.
    """

    def __init__(
        self,
        message: str,
        error_code: str = "UNKNOWN_ERROR",
        details: Optional[dict[str, Any]] = None,
        hint: Optional[str] = None,
    ) -> None:
        super().__init__(message)

        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.hint = hint

    def to_dict(self) -> dict[str, Any]:
        """Serialize this exception for structured logs and run records.

        Returns:
            Dictionary with error_type, message, error_code, details and hint.
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
            "hint": self.hint,
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


# =============================================================================
# Configuration Error
# =============================================================================
# Raised before any side effect: bad DB_ACTION, unknown step name, malformed
# YAML. Fail fast.
# =============================================================================
class ConfigurationError(ProvisionerError):
    """Raised when provisioner configuration is invalid."""

    def __init__(
        self,
        message: str,
        error_code: str = "CONFIG_ERROR",
        details: Optional[dict[str, Any]] = None,
        hint: Optional[str] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details, hint=hint)


class StateError(ProvisionerError):
    """Raised when the state file cannot be read, written or validated.

    Common Causes:
        - get()/put() called before load()
        - load() called twice in one process
        - state file not writable
        - a persisted value fails validation (e.g. non-numeric PROJECT_NUMBER)
    """

    def __init__(
        self,
        message: str,
        error_code: str = "STATE_ERROR",
        details: Optional[dict[str, Any]] = None,
        hint: Optional[str] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details, hint=hint)


# =============================================================================
# Provider Errors
# =============================================================================
# The provider is an external collaborator. The only distinction the core
# relies on is "not found" versus everything else; permission failures get
# their own type so destructive deletes can report them precisely.
# =============================================================================
class ProviderError(ProvisionerError):
    """Raised when a provider call fails.

    Attributes:
        operation: The provider operation ("describe", "create", "delete", ...).
        resource_kind: Kind of the resource involved, if any.
        resource_name: Name of the resource involved, if any.
        stderr: Raw diagnostic output from the provider, if any.
    """

    def __init__(
        self,
        message: str,
        operation: str,
        resource_kind: Optional[str] = None,
        resource_name: Optional[str] = None,
        stderr: str = "",
        error_code: str = "PROVIDER_ERROR",
        details: Optional[dict[str, Any]] = None,
        hint: Optional[str] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["operation"] = operation
        if resource_kind:
            enriched_details["resource_kind"] = resource_kind
        if resource_name:
            enriched_details["resource_name"] = resource_name

        super().__init__(message=message, error_code=error_code, details=enriched_details, hint=hint)

        self.operation = operation
        self.resource_kind = resource_kind
        self.resource_name = resource_name
        self.stderr = stderr


class ResourceNotFoundError(ProviderError):
    """Raised when the target resource does not exist."""

    def __init__(
        self,
        message: str,
        operation: str,
        resource_kind: Optional[str] = None,
        resource_name: Optional[str] = None,
        stderr: str = "",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            operation=operation,
            resource_kind=resource_kind,
            resource_name=resource_name,
            stderr=stderr,
            error_code="RESOURCE_NOT_FOUND",
            details=details,
        )


class PermissionDeniedError(ProviderError):
    """Raised when the caller is not allowed to perform the operation."""

    def __init__(
        self,
        message: str,
        operation: str,
        resource_kind: Optional[str] = None,
        resource_name: Optional[str] = None,
        stderr: str = "",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            operation=operation,
            resource_kind=resource_kind,
            resource_name=resource_name,
            stderr=stderr,
            error_code="PERMISSION_DENIED",
            details=details,
        )


# =============================================================================
# Step-Level Errors
# =============================================================================
class PreconditionError(ProvisionerError):
    """Raised when a step needs a state value that is not present.

    Attributes:
        key: The missing state key.
    """

    def __init__(
        self,
        message: str,
        key: str,
        hint: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["key"] = key

        super().__init__(
            message=message,
            error_code="MISSING_PRECONDITION",
            details=enriched_details,
            hint=hint,
        )

        self.key = key


class AddressRangeConflictError(ProvisionerError):
    """Raised when the connectivity bridge cannot be created on its range.

    Attributes:
        address_range: The CIDR range that was requested.
    """

    def __init__(
        self,
        message: str,
        address_range: str,
        hint: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["address_range"] = address_range

        super().__init__(
            message=message,
            error_code="ADDRESS_RANGE_CONFLICT",
            details=enriched_details,
            hint=hint,
        )

        self.address_range = address_range


class VerificationError(ProvisionerError):
    """Raised when a post-deploy verification fails.

    The deployed resource may exist in a partially configured state.
    """

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        hint: Optional[str] = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code="POST_DEPLOY_VERIFICATION_FAILED",
            details=details,
            hint=hint,
        )


class UnsupportedContextError(ProvisionerError):
    """Raised before any side effect when the runtime cannot run the pipeline."""

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        hint: Optional[str] = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code="UNSUPPORTED_CONTEXT",
            details=details,
            hint=hint,
        )


class StepError(ProvisionerError):
    """Raised when a provisioning step fails.

    The original error is chained (``raise ... from``) and its code and hint
    are carried over so the operator sees the actionable part.

    Attributes:
        step_name: Name of the failing step.
        cause_code: error_code of the underlying ProvisionerError.
    """

    def __init__(
        self,
        message: str,
        step_name: str,
        cause_code: str = "UNKNOWN_ERROR",
        hint: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["step_name"] = step_name
        enriched_details["cause_code"] = cause_code

        super().__init__(
            message=message,
            error_code="STEP_FAILED",
            details=enriched_details,
            hint=hint,
        )

        self.step_name = step_name
        self.cause_code = cause_code
