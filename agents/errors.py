# agents/errors.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# One place for every error the assistant can raise on purpose.
#
#   AssistantError
#   ├── ToolError
#   │   ├── ToolRegistrationError
#   │   │   └── DuplicateToolError
#   │   ├── UnknownToolError       (model asked for a tool we don't have)
#   │   └── ToolExecutionError     (a tool handler blew up)
#   ├── GatewayError
#   │   ├── GatewayUnavailableError (mail gateway unreachable)
#   │   └── GatewayResponseError    (mail gateway answered with an error)
#   └── ConversationError          (model backend failed mid-turn)
# ============================================================================


class AssistantError(Exception):
    """Base class for all assistant errors."""


# ── TOOL ERRORS ────────────────────────────────────────────────────────

class ToolError(AssistantError):
    """Something went wrong registering, finding or running a tool."""


class ToolRegistrationError(ToolError):
    """A declaration/handler pair could not be registered."""


class DuplicateToolError(ToolRegistrationError):
    """A tool with the same name is already registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Tool already registered: {name}")


class UnknownToolError(ToolError):
    """The requested tool name has no registered handler."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown function call: {name}")


class ToolExecutionError(ToolError):
    """A tool handler raised. Carries the tool name and the original error."""

    def __init__(self, tool_name: str, cause: BaseException):
        self.tool_name = tool_name
        self.cause = cause
        super().__init__(f"Tool {tool_name!r} failed: {cause}")


# ── GATEWAY ERRORS ─────────────────────────────────────────────────────

class GatewayError(AssistantError):
    """The mail gateway could not give us what we asked for."""


class GatewayUnavailableError(GatewayError):
    """The request never reached the gateway (connection refused, DNS, ...)."""


class GatewayResponseError(GatewayError):
    """The gateway answered, but not with a success status or usable body."""

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Mail gateway returned {status_code}: {body}")


# ── CONVERSATION ERRORS ────────────────────────────────────────────────

class ConversationError(AssistantError):
    """The model backend failed while a turn was being streamed."""
