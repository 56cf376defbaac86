"""
Custom Exception Hierarchy for Azure Data Refresh

This module provides the exception hierarchy used across the replica
lifecycle workflow. Every error carries structured context so the final
report and the audit stream can describe exactly which database, server
or deployment was involved.
"""

from typing import Any, Dict, Optional


class DataRefreshError(Exception):
    """
    Base exception class for all data refresh related errors.

    Provides structured error information including context, error codes,
    and optional recovery suggestions.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recovery_suggestion: Optional[str] = None,
    ) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error message
            error_code: Optional error code for programmatic handling
            context: Optional dictionary with error context
            cause: Optional underlying exception that caused this error
            recovery_suggestion: Optional suggestion for error recovery
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.cause = cause
        self.recovery_suggestion = recovery_suggestion

    def __str__(self) -> str:
        """Return a formatted error message with context."""
        result = self.message
        if self.error_code:
            result = f"[{self.error_code}] {result}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            result += f" (context: {context_str})"
        if self.cause:
            result += f" (caused by: {self.cause})"
        if self.recovery_suggestion:
            result += f" (suggestion: {self.recovery_suggestion})"
        return result

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None,
            "recovery_suggestion": self.recovery_suggestion,
        }


# Configuration errors: the caller is about to operate on the wrong data
class ConfigurationError(DataRefreshError):
    """Raised when the refresh request or environment is misconfigured."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("error_code", "CONFIGURATION_ERROR")
        super().__init__(message, **kwargs)


class ProductionNamespaceError(ConfigurationError):
    """Raised when the destination namespace is the production namespace."""

    def __init__(self, message: str, namespace: Optional[str] = None, **kwargs: Any) -> None:
        context = kwargs.get("context", {})
        if namespace:
            context["namespace"] = namespace
        kwargs["context"] = context
        kwargs.setdefault("error_code", "PRODUCTION_NAMESPACE_REFUSED")
        kwargs.setdefault(
            "recovery_suggestion",
            "Pass a non-production --destination-namespace",
        )
        super().__init__(message, **kwargs)


class OwnershipTagMismatchError(ConfigurationError):
    """Raised when a name-matched database belongs to a different namespace."""

    def __init__(
        self,
        message: str,
        database: Optional[str] = None,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if database:
            context["database"] = database
        if expected is not None:
            context["expected"] = expected
        context["actual"] = actual
        kwargs["context"] = context
        kwargs.setdefault("error_code", "OWNERSHIP_TAG_MISMATCH")
        kwargs.setdefault(
            "recovery_suggestion",
            "Check the discovery tags and database naming before re-running",
        )
        super().__init__(message, **kwargs)


# Control-plane errors
class ControlPlaneError(DataRefreshError):
    """Base class for errors returned by the cloud control plane."""

    pass


class AzureAuthenticationError(ControlPlaneError):
    """Raised when Azure authentication fails."""

    def __init__(self, message: str, tenant_id: Optional[str] = None, **kwargs: Any) -> None:
        context = kwargs.get("context", {})
        if tenant_id:
            context["tenant_id"] = tenant_id
        kwargs["context"] = context
        kwargs.setdefault("error_code", "AZURE_AUTH_FAILED")
        kwargs.setdefault(
            "recovery_suggestion",
            "Try running 'az login' or check your Azure credentials",
        )
        super().__init__(message, **kwargs)


class DiscoveryError(ControlPlaneError):
    """Raised when secondary server or database discovery fails."""

    def __init__(self, message: str, environment: Optional[str] = None, **kwargs: Any) -> None:
        context = kwargs.get("context", {})
        if environment:
            context["environment"] = environment
        kwargs["context"] = context
        kwargs.setdefault("error_code", "DISCOVERY_FAILED")
        super().__init__(message, **kwargs)


class ReplicationLinkError(ControlPlaneError):
    """Raised when a replication link cannot be terminated."""

    def __init__(
        self,
        message: str,
        database: Optional[str] = None,
        partner_server: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if database:
            context["database"] = database
        if partner_server:
            context["partner_server"] = partner_server
        kwargs["context"] = context
        kwargs.setdefault("error_code", "LINK_TERMINATION_FAILED")
        super().__init__(message, **kwargs)


class TeardownError(ControlPlaneError):
    """Raised when a secondary database cannot be deleted."""

    def __init__(
        self,
        message: str,
        database: Optional[str] = None,
        server: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if database:
            context["database"] = database
        if server:
            context["server"] = server
        kwargs["context"] = context
        kwargs.setdefault("error_code", "DATABASE_DELETE_FAILED")
        super().__init__(message, **kwargs)


class DeploymentError(ControlPlaneError):
    """Raised when a recreation deployment fails or never finishes."""

    def __init__(
        self,
        message: str,
        deployment_name: Optional[str] = None,
        state: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if deployment_name:
            context["deployment"] = deployment_name
        if state:
            context["state"] = state
        kwargs["context"] = context
        kwargs.setdefault("error_code", "DEPLOYMENT_FAILED")
        super().__init__(message, **kwargs)


class PrimaryNotFoundError(DataRefreshError):
    """Raised when the primary database for a recreation cannot be found."""

    def __init__(
        self,
        message: str,
        server: Optional[str] = None,
        database: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if server:
            context["server"] = server
        if database:
            context["database"] = database
        kwargs["context"] = context
        kwargs.setdefault("error_code", "PRIMARY_NOT_FOUND")
        kwargs.setdefault(
            "recovery_suggestion",
            "Confirm the primary was restored, then recreate the secondary manually",
        )
        super().__init__(message, **kwargs)


class ControlPlaneTimeoutError(ControlPlaneError):
    """Raised when a control-plane call exceeds its timeout."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        timeout_value: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if operation:
            context["operation"] = operation
        if timeout_value:
            context["timeout"] = f"{timeout_value}s"
        kwargs["context"] = context
        kwargs.setdefault("error_code", "CONTROL_PLANE_TIMEOUT")
        super().__init__(message, **kwargs)
