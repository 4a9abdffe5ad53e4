"""Agentic run orchestration.

Drives a conversational run against a streaming model endpoint: tracks tool
calls as their arguments stream in, reconciles arguments produced under strict
schemas, executes tools and continues the run for further rounds.

Example:
    from agentloop import RunController, ToolDefinition, ToolRegistry
    from agentloop.transport import OpenAIChatTransport
    from agentloop.settings import load_settings
    from agentloop.utils import setup_logging

    settings = load_settings()
    setup_logging(settings)
    registry = ToolRegistry([ToolDefinition(...)], config=settings.to_executor_config())
    controller = RunController(
        OpenAIChatTransport(settings.to_client_settings()),
        registry,
        settings.to_run_config(),
    )
    result = await controller.run("What's the weather in Oslo?")
"""

from .client_tools import create_awaiting_input_event
from .controller import RunConfig, RunController, RunResult, RunTransport, execute_run
from .errors import (
    AgentLoopError,
    ArgumentSizeLimitError,
    DuplicateToolError,
    EventDecodeError,
    FailureKind,
    InvalidToolSchemaError,
    MaxToolRoundsExceededError,
    MissingToolRegistryError,
    MissingToolResultsError,
    RunAbortedError,
    RunCancelledError,
    RunConfigurationError,
    RunFailedError,
    RunLimitError,
    RunTransportError,
    ToolRegistryError,
    UnknownParameterError,
)
from .events import (
    AWAITING_INPUT_EVENT_NAME,
    CustomEvent,
    EventType,
    RunError,
    RunEvent,
    RunFinished,
    RunStarted,
    TextDelta,
    ToolCallArgsDelta,
    ToolCallArgsPatch,
    ToolCallEnded,
    ToolCallFinalized,
    ToolCallResult,
    ToolCallStarted,
    TrackerNotification,
    decode_event,
)
from .strictness import (
    PASS_THROUGH_PREFIX,
    can_be_null,
    strictify_schema,
    unstrictify_params,
    unstrictify_params_from_schema,
)
from .tools import ExecutorConfig, ToolDefinition, ToolRegistry
from .tracker import ToolCallTracker
from .types import (
    MAX_ARGUMENT_BYTES,
    Finalized,
    FinalizeOutcome,
    OutgoingMessage,
    PendingToolCall,
    RawFallback,
    RunRequest,
    RunRound,
    RunState,
    TextContent,
    ToolResult,
)

__all__ = [
    # controller.py
    "RunConfig",
    "RunController",
    "RunResult",
    "RunTransport",
    "execute_run",
    "create_awaiting_input_event",
    # errors.py
    "AgentLoopError",
    "ArgumentSizeLimitError",
    "DuplicateToolError",
    "EventDecodeError",
    "FailureKind",
    "InvalidToolSchemaError",
    "MaxToolRoundsExceededError",
    "MissingToolRegistryError",
    "MissingToolResultsError",
    "RunAbortedError",
    "RunCancelledError",
    "RunConfigurationError",
    "RunFailedError",
    "RunLimitError",
    "RunTransportError",
    "ToolRegistryError",
    "UnknownParameterError",
    # events.py
    "AWAITING_INPUT_EVENT_NAME",
    "CustomEvent",
    "EventType",
    "RunError",
    "RunEvent",
    "RunFinished",
    "RunStarted",
    "TextDelta",
    "ToolCallArgsDelta",
    "ToolCallArgsPatch",
    "ToolCallEnded",
    "ToolCallFinalized",
    "ToolCallResult",
    "ToolCallStarted",
    "TrackerNotification",
    "decode_event",
    # strictness
    "PASS_THROUGH_PREFIX",
    "can_be_null",
    "strictify_schema",
    "unstrictify_params",
    "unstrictify_params_from_schema",
    # tools
    "ExecutorConfig",
    "ToolDefinition",
    "ToolRegistry",
    # tracker.py
    "ToolCallTracker",
    # types.py
    "MAX_ARGUMENT_BYTES",
    "Finalized",
    "FinalizeOutcome",
    "OutgoingMessage",
    "PendingToolCall",
    "RawFallback",
    "RunRequest",
    "RunRound",
    "RunState",
    "TextContent",
    "ToolResult",
]

__version__ = "0.1.0"
