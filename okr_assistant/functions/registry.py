"""
Function Registry

Registry of the domain functions the assistant can execute, looked up by
intent name. Intent execution and provider function calling both invoke
handlers through it.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional
from dataclasses import dataclass
import logging

from okr_assistant.functions.base import FunctionNotFoundError, log_function_invocation
from okr_assistant.models.intent import FunctionExecutionResult
from okr_assistant.models.user_context import UserContext

logger = logging.getLogger(__name__)

# handler(params, user_context, conversation_id) -> FunctionExecutionResult
FunctionCallable = Callable[[Dict[str, str], UserContext, str], Awaitable[FunctionExecutionResult]]
ExecutionListener = Callable[[str, FunctionExecutionResult], None]


@dataclass
class FunctionHandler:
    """Domain function definition"""
    name: str
    description: str
    parameters: Dict[str, Any]
    handler: FunctionCallable


class FunctionRegistry:
    """
    Registry of OKR domain functions

    Provides the handlers that intent execution and function calling invoke.
    Listeners are notified after every successful execution, which is how
    entity references reach the conversation store.
    """

    def __init__(self, name: str = "okr-functions"):
        self.functions: Dict[str, FunctionHandler] = {}
        self.name = name
        self._listeners: List[ExecutionListener] = []
        logger.info(f"Initializing function registry: {self.name}")

    def register(self, function: FunctionHandler):
        """Register a function handler"""
        if function.name in self.functions:
            logger.warning(f"Function {function.name} already registered, overwriting")

        self.functions[function.name] = function
        logger.debug(f"Registered function: {function.name}")

    def get(self, name: str) -> FunctionHandler:
        """Get a registered function by name"""
        if name not in self.functions:
            raise FunctionNotFoundError(name, self.list_functions())
        return self.functions[name]

    def has(self, name: str) -> bool:
        return name in self.functions

    def list_functions(self) -> List[str]:
        """List all registered function names"""
        return list(self.functions.keys())

    def add_listener(self, listener: ExecutionListener) -> None:
        self._listeners.append(listener)

    async def invoke(
        self,
        name: str,
        params: Dict[str, str],
        user_context: Optional[UserContext] = None,
        conversation_id: str = ""
    ) -> FunctionExecutionResult:
        """
        Invoke a function with parameters

        Args:
            name: Name of the function to invoke
            params: String parameters extracted from the conversation
            user_context: Caller identity forwarded to the handler
            conversation_id: Conversation the call belongs to

        Returns:
            The handler's FunctionExecutionResult

        Raises:
            FunctionNotFoundError: If no handler is registered under name
        """
        function = self.get(name)
        context = user_context or UserContext()

        log_function_invocation(name, context.user_id, params)

        try:
            result = await function.handler(params, context, conversation_id)
        except Exception as e:
            logger.error(f"Function {name} failed: {str(e)}")
            raise

        if result.success:
            logger.info(f"Function {name} executed successfully")
            for listener in self._listeners:
                listener(conversation_id, result)
        else:
            logger.warning(f"Function {name} reported failure: {result.message}")
        return result

    def get_schemas(self, names: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        """Get tool schemas (OpenAI function format) for registered functions"""
        selected = names if names is not None else self.list_functions()
        return [
            {
                "type": "function",
                "function": {
                    "name": self.functions[name].name,
                    "description": self.functions[name].description,
                    "parameters": self.functions[name].parameters
                }
            }
            for name in selected
            if name in self.functions
        ]
