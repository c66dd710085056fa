"""Error types shared by the agents, workers and Slack handlers."""

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = "Something went wrong processing your request. I've logged the error for review."


class BotError(Exception):
    """Base class for errors raised by this application."""

    def __init__(self, message: str, code: str = 'bot_error', recoverable: bool = True,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.recoverable = recoverable
        self.context = context or {}


class CapabilityError(BotError):
    """Every retry and fallback model failed for a model call."""

    def __init__(self, message: str, last_error: Optional[Exception] = None):
        super().__init__(message, code='capability_exhausted', recoverable=False)
        self.last_error = last_error


class ToolInputError(BotError):
    """A tool call named an unknown tool or carried invalid input."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(message, code='tool_input', context={'tool': tool_name})
        self.tool_name = tool_name


class SlackAPIError(BotError):
    """A Slack Web API call failed at the HTTP level or returned ok=false."""

    def __init__(self, method: str, error: str):
        super().__init__(f"Slack {method} failed: {error}", code='slack_api',
                         context={'method': method})
        self.method = method
        self.error = error


class ApprovalError(BotError):
    pass


class ApprovalNotFound(ApprovalError):
    def __init__(self, approval_id: str):
        super().__init__(f"Approval {approval_id} not found", code='approval_not_found')


class ApprovalStateError(ApprovalError):
    """Transition requested from a terminal approval state."""

    def __init__(self, approval_id: str, status: str):
        super().__init__(f"Approval {approval_id} is already {status}", code='approval_state',
                         context={'status': status})
        self.status = status


class EmptyDraftError(ApprovalError):
    def __init__(self, approval_id: str):
        super().__init__(f"Approval {approval_id} has no draft message", code='approval_empty_draft')


def handle_error(error: BaseException, context: str = '') -> str:
    """Log an error and return the operator-facing text for it.

    Never exposes stack traces or internal identifiers.
    """
    if isinstance(error, BotError):
        logger.error(f"[{context}] {error.code}: {error.message} {error.context}")
    else:
        logger.exception(f"[{context}] Unexpected error: {error}")
    return FALLBACK_MESSAGE
