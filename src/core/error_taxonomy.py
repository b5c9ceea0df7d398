"""
Error Taxonomy for P&L Report Generation

Every failure a report request can hit is mapped onto one of a small set of
categories, following the pipeline order:

    configuration load -> selection -> warehouse fetch -> assembly -> output

Each category carries a severity, whether retrying can help, and the user
facing message the CLI prints. Engine code raises the ReportError subclasses
below; anything else (requests, pydantic, OS errors) is classified after the
fact by `classify_error`.
"""

from enum import Enum, auto
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Tuple
import logging
import traceback

import requests
from pydantic import ValidationError

logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    # Configuration documents
    CONFIGURATION_ERROR = auto()
    ACCOUNT_HIERARCHY_CYCLE = auto()

    # Selector resolution
    INVALID_SELECTOR = auto()
    UNKNOWN_ENTITY = auto()
    NO_MATCHING_DATA = auto()

    # Warehouse
    AUTHENTICATION_FAILED = auto()
    RATE_LIMITED = auto()
    DATA_SOURCE_UNAVAILABLE = auto()
    DATA_RETRIEVAL_TIMEOUT = auto()
    DATA_FORMAT_ERROR = auto()

    # Writing HTML / workbooks
    FILE_SYSTEM_ERROR = auto()

    UNKNOWN_ERROR = auto()


class ErrorSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


USER_MESSAGES: Dict[ErrorCategory, str] = {
    ErrorCategory.CONFIGURATION_ERROR: "The report configuration could not be loaded.",
    ErrorCategory.ACCOUNT_HIERARCHY_CYCLE: "The account hierarchy contains a cycle and cannot be rolled up.",
    ErrorCategory.INVALID_SELECTOR: "The report selection is not valid.",
    ErrorCategory.UNKNOWN_ENTITY: "The selected district, region or subsidiary was not found.",
    ErrorCategory.NO_MATCHING_DATA: "No facilities were found for the selection.",
    ErrorCategory.AUTHENTICATION_FAILED: "Unable to authenticate with the analytics warehouse.",
    ErrorCategory.RATE_LIMITED: "The warehouse is rate limiting requests. Please try again in a moment.",
    ErrorCategory.DATA_SOURCE_UNAVAILABLE: "The analytics warehouse is temporarily unavailable.",
    ErrorCategory.DATA_RETRIEVAL_TIMEOUT: "The warehouse query timed out.",
    ErrorCategory.DATA_FORMAT_ERROR: "The warehouse returned data in an unexpected format.",
    ErrorCategory.FILE_SYSTEM_ERROR: "The report could not be written to disk.",
}


@dataclass
class RecoveryAction:
    """What the caller can do about an error."""
    action_type: str
    description: str
    parameters: Dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def retry(delay_seconds: float = 1.0, max_attempts: int = 3) -> "RecoveryAction":
        return RecoveryAction(
            "retry",
            f"Run the report again in {delay_seconds:g}s ({max_attempts} attempts at most)",
            {"delay": delay_seconds, "max_attempts": max_attempts},
        )

    @staticmethod
    def fix_configuration(document: str) -> "RecoveryAction":
        return RecoveryAction("fix_configuration", f"Correct {document} in the config store", {"document": document})

    @staticmethod
    def choose_other_selector(message: str) -> "RecoveryAction":
        return RecoveryAction(
            "choose_other_selector",
            "Select a different district, region or subsidiary",
            {"message": message},
        )

    @staticmethod
    def check_credentials() -> "RecoveryAction":
        return RecoveryAction(
            "check_credentials",
            "Check WAREHOUSE_ACCESS_TOKEN or the client-credentials settings",
        )


@dataclass
class ClassifiedError:
    """An error with its category and recovery hints."""
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    recoverable: bool
    recovery_actions: List[RecoveryAction] = field(default_factory=list)

    original_exception: Optional[Exception] = None
    pipeline_phase: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None
    user_message: Optional[str] = None

    def __post_init__(self):
        exc = self.original_exception
        if exc is not None and not self.stack_trace:
            self.stack_trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        if not self.user_message:
            self.user_message = USER_MESSAGES.get(self.category, f"An error occurred: {self.message}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.name,
            "severity": self.severity.value,
            "message": self.message,
            "user_message": self.user_message,
            "recoverable": self.recoverable,
            "recovery_actions": [
                {"type": a.action_type, "description": a.description}
                for a in self.recovery_actions
            ],
            "pipeline_phase": self.pipeline_phase,
            "context": self.context,
        }


class ReportError(Exception):
    """Base class for errors raised by the report engine."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN_ERROR,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        recoverable: bool = False,
        recovery_actions: List[RecoveryAction] = None,
        context: Dict[str, Any] = None,
    ):
        super().__init__(message)
        self.category = category
        self.severity = severity
        self.recoverable = recoverable
        self.recovery_actions = recovery_actions or []
        self.context = context or {}

    def classify(self) -> ClassifiedError:
        return ClassifiedError(
            category=self.category,
            severity=self.severity,
            message=str(self),
            recoverable=self.recoverable,
            recovery_actions=list(self.recovery_actions),
            original_exception=self,
            context=dict(self.context),
        )


class ConfigurationError(ReportError):
    """A configuration document is missing or malformed."""

    def __init__(self, message: str, document: str = None, context: Dict[str, Any] = None):
        context = dict(context or {})
        if document:
            context["document"] = document
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION_ERROR,
            severity=ErrorSeverity.CRITICAL,
            recovery_actions=[RecoveryAction.fix_configuration(document or "the configuration")],
            context=context,
        )


class AccountCycleError(ConfigurationError):
    """The account parent graph is not a forest."""

    def __init__(self, cycle: List[str], document: str = None):
        super().__init__(
            f"Cycle detected in account hierarchy: {' -> '.join(cycle)}",
            document=document,
            context={"cycle": list(cycle)},
        )
        self.category = ErrorCategory.ACCOUNT_HIERARCHY_CYCLE
        self.cycle = list(cycle)


class SelectorNotFoundError(ReportError):
    """A district, region or subsidiary key is not configured."""

    def __init__(self, level: str, selector: str):
        super().__init__(
            f"{level.capitalize()} not found: {selector}",
            category=ErrorCategory.UNKNOWN_ENTITY,
            severity=ErrorSeverity.LOW,
            recoverable=True,
            recovery_actions=[RecoveryAction.choose_other_selector(f"Unknown {level}: {selector}")],
            context={"level": level, "selector": selector},
        )
        self.level = level
        self.selector = selector


class NoDataError(ReportError):
    """
    A selection resolved to zero member customers.

    Not raised for facilities without revenue; those are pruned silently.
    """

    def __init__(self, level: str, selector: str, message: str = None):
        super().__init__(
            message or f"No customers found for {level} {selector}",
            category=ErrorCategory.NO_MATCHING_DATA,
            severity=ErrorSeverity.LOW,
            recoverable=True,
            recovery_actions=[RecoveryAction.choose_other_selector("Selection has no facilities")],
            context={"level": level, "selector": selector},
        )
        self.level = level
        self.selector = selector


class WarehouseError(ReportError):
    """A warehouse query failed or timed out."""

    def __init__(self, message: str, timeout: bool = False, context: Dict[str, Any] = None):
        super().__init__(
            message,
            category=ErrorCategory.DATA_RETRIEVAL_TIMEOUT if timeout else ErrorCategory.DATA_SOURCE_UNAVAILABLE,
            severity=ErrorSeverity.MEDIUM if timeout else ErrorSeverity.HIGH,
            recoverable=True,
            recovery_actions=[RecoveryAction.retry(delay_seconds=5.0 if timeout else 30.0)],
            context=context,
        )


class AuthenticationError(ReportError):
    """The warehouse token could not be obtained or was rejected."""

    def __init__(self, message: str):
        super().__init__(
            message,
            category=ErrorCategory.AUTHENTICATION_FAILED,
            severity=ErrorSeverity.HIGH,
            recovery_actions=[RecoveryAction.check_credentials()],
        )


# (message fragments, category, severity, retry delay or None)
_MESSAGE_RULES: List[Tuple[Tuple[str, ...], ErrorCategory, ErrorSeverity, Optional[float]]] = [
    (("rate limit", "429", "quota"), ErrorCategory.RATE_LIMITED, ErrorSeverity.MEDIUM, 60.0),
    (("auth", "401", "403"), ErrorCategory.AUTHENTICATION_FAILED, ErrorSeverity.HIGH, None),
    (("timeout", "timed out"), ErrorCategory.DATA_RETRIEVAL_TIMEOUT, ErrorSeverity.MEDIUM, 5.0),
]


def _by_type(exception: Exception) -> Optional[Tuple[ErrorCategory, ErrorSeverity, Optional[float]]]:
    # requests exceptions subclass OSError, so they are checked first
    if isinstance(exception, requests.Timeout):
        return ErrorCategory.DATA_RETRIEVAL_TIMEOUT, ErrorSeverity.MEDIUM, 5.0
    if isinstance(exception, requests.ConnectionError):
        return ErrorCategory.DATA_SOURCE_UNAVAILABLE, ErrorSeverity.HIGH, 30.0
    if isinstance(exception, requests.RequestException):
        return None
    if isinstance(exception, ValidationError):
        return ErrorCategory.CONFIGURATION_ERROR, ErrorSeverity.CRITICAL, None
    return None


def classify_error(
    exception: Exception,
    pipeline_phase: str = None,
    context: Dict[str, Any] = None,
) -> ClassifiedError:
    """Classify any exception raised while producing a report."""
    context = context or {}

    if isinstance(exception, ReportError):
        classified = exception.classify()
        classified.pipeline_phase = pipeline_phase
        classified.context.update(context)
        return classified

    match = _by_type(exception)
    if match is None:
        text = str(exception).lower()
        for fragments, category, severity, delay in _MESSAGE_RULES:
            if any(f in text for f in fragments):
                match = (category, severity, delay)
                break

    if match is None and isinstance(exception, OSError):
        match = (ErrorCategory.FILE_SYSTEM_ERROR, ErrorSeverity.MEDIUM, None)

    category, severity, delay = match or (ErrorCategory.UNKNOWN_ERROR, ErrorSeverity.HIGH, None)
    if category == ErrorCategory.UNKNOWN_ERROR:
        logger.debug(f"Unclassified {type(exception).__name__}: {exception}")

    return ClassifiedError(
        category=category,
        severity=severity,
        message=str(exception),
        recoverable=delay is not None,
        recovery_actions=[RecoveryAction.retry(delay_seconds=delay)] if delay is not None else [],
        original_exception=exception,
        pipeline_phase=pipeline_phase,
        context=context,
    )
