"""
Error Recovery Skill

Turns upstream failures into the apologetic, user-facing text the assistant
shows instead of an error. Diagnostic detail is logged, never shown.

Reusability: any route that must always answer the user
"""

from typing import Optional, Dict, Any
from dataclasses import dataclass
import logging

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "I'm sorry, something went wrong while processing your request. Please try again in a moment."
TIMEOUT_MESSAGE = (
    "I'm sorry, but the request took too long to complete and timed out. "
    "Please try again with a simpler request."
)
CANCELLED_MESSAGE = "The request was cancelled before a response was ready."
NO_OPERATIONS_MESSAGE = "No specific operations to perform."
EMPTY_DOCUMENT_MESSAGE = "No document content was available for analysis. Please check the document and try again."


@dataclass
class RecoveryStrategy:
    """Strategy for recovering from an error"""
    strategy_type: str  # "retry", "abort", "degrade"
    message: str  # Human-friendly message
    context: Optional[Dict[str, Any]] = None


class ErrorRecoverySkill:
    """
    Skill for turning failures into user-facing messages

    Handles:
    - Provider timeouts -> retry suggestion
    - Provider and handler failures -> generic apology
    - Missing or failing intent handlers -> per-intent message
    """

    def handle_timeout(self, operation: str, timeout_seconds: float) -> RecoveryStrategy:
        logger.warning(f"{operation} timed out after {timeout_seconds}s")
        return RecoveryStrategy(
            strategy_type="retry",
            message=TIMEOUT_MESSAGE,
            context={"operation": operation, "timeout_seconds": timeout_seconds}
        )

    def handle_system_error(self, error_message: str = "") -> RecoveryStrategy:
        """
        Handle unexpected system error

        Args:
            error_message: Optional error details (will be logged, not shown to user)

        Returns:
            Recovery strategy with user-friendly error message
        """
        if error_message:
            logger.error(f"System error: {error_message}")

        return RecoveryStrategy(
            strategy_type="abort",
            message=GENERIC_FAILURE_MESSAGE,
            context={}
        )

    def handle_cancellation(self) -> RecoveryStrategy:
        return RecoveryStrategy(strategy_type="abort", message=CANCELLED_MESSAGE)

    def missing_handler_message(self, intent: str) -> str:
        return f"No specific function execution available for {intent}"

    def handler_failure_message(self, intent: str, error: Exception) -> str:
        return f"Error executing {intent}: {str(error)}"

    def step_failure_message(self, step: str, error: Exception) -> str:
        return f"Error in {step}: {str(error)}"


# Singleton instance for easy import
error_recovery_skill = ErrorRecoverySkill()
