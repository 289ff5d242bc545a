"""
Domain Function Base

Errors and response helpers shared by the OKR domain function handlers.

Handlers raise FunctionExecutionError for expected failures (validation,
upstream API errors). The registry raises FunctionNotFoundError for names it
does not know.
"""

from typing import Any, Dict, Optional
import logging

from okr_assistant.models.intent import FunctionExecutionResult

logger = logging.getLogger(__name__)

SENSITIVE_PARAMETERS = ("password", "token", "secret", "access_token")


class FunctionExecutionError(Exception):
    """Base exception for domain function errors"""
    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class FunctionNotFoundError(ValueError):
    """Raised when no handler is registered for a function name"""
    def __init__(self, name: str, available: Optional[list] = None):
        self.name = name
        self.available = available or []
        super().__init__(f"Function {name} not found. Available functions: {self.available}")


def redact_parameters(params: Dict[str, Any]) -> Dict[str, Any]:
    """Drop sensitive values before parameters are logged"""
    return {k: v for k, v in params.items() if k not in SENSITIVE_PARAMETERS}


def log_function_invocation(name: str, user_id: str, params: Dict[str, Any]) -> None:
    """
    Log function invocation for audit trail

    Args:
        name: Name of the function being invoked
        user_id: User making the request
        params: Function parameters (sensitive values are redacted)
    """
    logger.info(
        f"Function Invocation: {name} | User: {user_id or 'anonymous'} | Params: {redact_parameters(params)}"
    )


def create_error_response(error: FunctionExecutionError) -> Dict[str, Any]:
    """
    Create a standardized error payload

    Args:
        error: The FunctionExecutionError to convert

    Returns:
        Standardized error dictionary (sent back to the model as a tool result)
    """
    return {
        "success": False,
        "error": {
            "code": error.code,
            "message": error.message,
            "details": error.details
        }
    }


def create_success_response(result: FunctionExecutionResult) -> Dict[str, Any]:
    """
    Create a standardized success payload from a handler result

    Args:
        result: The handler's FunctionExecutionResult

    Returns:
        Standardized success dictionary
    """
    response = {
        "success": result.success,
        "data": result.result
    }

    if result.message:
        response["message"] = result.message

    return response
