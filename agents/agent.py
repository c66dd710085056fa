import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from core.blocks import build_approval_blocks, build_channel_check_blocks
from .instructions import TASK_INSTRUCTIONS, CONTENT_INSTRUCTIONS, COMMUNICATION_INSTRUCTIONS
from .llm import LLMClient, LLMResponse, Usage, get_llm, tool_result_message
from .results import ToolResult, ApprovalCreated
from .schemas import (
    AgentContext, ToolName, TASK_TOOLS, CONTENT_TOOLS, COMMUNICATION_TOOLS, catalog,
)
from .tools import execute_tool

logger = logging.getLogger('agent')

MAX_TOOL_TURNS = 10


class LoopState(str, Enum):
    REQUESTING = "requesting"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    ABORTED_TURN_LIMIT = "aborted_turn_limit"

    def __str__(self):
        return self.value


class ResponseAction(str, Enum):
    CREATE_TASK = "create_task"
    CREATE_APPROVAL = "create_approval"
    SEND_MESSAGE = "send_message"
    NONE = "none"

    def __str__(self):
        return self.value


# Successful tools that determine the outward action of a run.
ACTION_FOR_TOOL = {
    str(ToolName.CREATE_TASK): ResponseAction.CREATE_TASK,
    str(ToolName.DRAFT_CLIENT_MESSAGE): ResponseAction.CREATE_APPROVAL,
    str(ToolName.SEND_INTERNAL_MESSAGE): ResponseAction.SEND_MESSAGE,
    str(ToolName.POST_TO_SLACK): ResponseAction.SEND_MESSAGE,
}


@dataclass
class ToolExecution:
    tool_name: str
    tool_input: Optional[Dict[str, Any]]
    result: ToolResult


@dataclass
class AgentResponse:
    text: str
    action: ResponseAction = ResponseAction.NONE
    metadata: Dict[str, Any] = field(default_factory=dict)
    blocks: Optional[List[Dict[str, Any]]] = None


@dataclass
class AgentRunResult:
    response: AgentResponse
    tools_executed: List[ToolExecution]
    usage: Usage
    turns: int
    state: LoopState


def synthesize_response(text: str, executions: List[ToolExecution]) -> AgentResponse:
    """Reduce a run to one outward action.

    Executions are scanned in the order they ran; the last successful
    execution of an action-bearing tool wins, and the data of every such
    execution is merged into the metadata in that order.
    """
    action = ResponseAction.NONE
    metadata: Dict[str, Any] = {}
    for execution in executions:
        tool_action = ACTION_FOR_TOOL.get(execution.tool_name)
        if tool_action and execution.result.success:
            action = tool_action
            metadata.update(execution.result.data_dict())
    return AgentResponse(text=text, action=action, metadata=metadata)


def turn_limit_summary(executions: List[ToolExecution]) -> str:
    lines = [f"- {e.tool_name}: {e.result.message}" for e in executions]
    return (f"I completed {len(executions)} action(s) but hit the maximum number of steps. "
            f"Here's what I did:\n" + '\n'.join(lines))


class BaseAgent:
    """Bounded tool-use loop shared by the specialists.

    Each turn sends the transcript and the agent's tool catalog to the
    model. Requested tools run one after another and their results are
    appended in request order. The run ends when the model stops asking
    for tools, or after MAX_TOOL_TURNS model calls with a summary of
    everything executed so far.
    """

    name = 'Agent'
    instructions = ''
    tool_names: List[ToolName] = []

    def __init__(self, llm: LLMClient = None):
        self._llm = llm

    @property
    def llm(self) -> LLMClient:
        return self._llm or get_llm()

    def build_context_prefix(self, context: AgentContext) -> str:
        channel = context.channel_id
        if context.is_client_channel:
            channel += ' (CLIENT CHANNEL: requires approval)'
        parts = [
            f"[Channel: {channel}]",
            f"[Channel type: {context.channel_type}]",
            f"[User: {context.user_id}]",
        ]
        if context.thread_ts:
            parts.append(f"[Thread: {context.thread_ts}]")
        parts.append(f"[Current time: {datetime.now(timezone.utc).isoformat()}]")
        return ' '.join(parts)

    def _execute(self, call, context: AgentContext) -> ToolResult:
        try:
            return execute_tool(call.name, call.arguments, context, allowed=self.tool_names)
        except Exception as e:
            logger.exception(f"{self.name}: tool {call.name} failed")
            return ToolResult.failure(f"Tool execution error: {e}")

    def run(self, message: str, context: AgentContext) -> AgentRunResult:
        """Run the loop for one operator instruction.

        Raises:
            CapabilityError: The model could not be reached on any tier
        """
        transcript: List[Dict[str, Any]] = [
            {'role': 'user', 'content': f"{self.build_context_prefix(context)}\n\n{message}"},
        ]
        tools = catalog(self.tool_names)
        executions: List[ToolExecution] = []
        usage = Usage()
        turns = 0
        response: Optional[LLMResponse] = None
        state = LoopState.REQUESTING

        logger.info(f"{self.name} starting run ({len(message)} chars)")

        while state in (LoopState.REQUESTING, LoopState.EXECUTING_TOOLS):
            if state is LoopState.REQUESTING:
                if turns >= MAX_TOOL_TURNS:
                    state = LoopState.ABORTED_TURN_LIMIT
                    continue
                turns += 1
                response = self.llm.complete(self.instructions, transcript, tools=tools, max_tokens=4096)
                usage.input_tokens += response.usage.input_tokens
                usage.output_tokens += response.usage.output_tokens

                if not response.tool_calls or response.stop_reason == 'end_turn':
                    state = LoopState.DONE
                else:
                    transcript.append(response.as_message())
                    state = LoopState.EXECUTING_TOOLS

            else:
                logger.debug(f"{self.name} turn {turns}: {[c.name for c in response.tool_calls]}")
                for call in response.tool_calls:
                    result = self._execute(call, context)
                    executions.append(ToolExecution(call.name, call.arguments, result))
                    transcript.append(tool_result_message(call.id, result.to_json()))
                    logger.debug(f"Tool result {call.name}: success={result.success} {result.message}")
                state = LoopState.REQUESTING

        if state is LoopState.ABORTED_TURN_LIMIT:
            logger.warning(f"{self.name} hit the limit of {MAX_TOOL_TURNS} turns")
            final = AgentResponse(text=turn_limit_summary(executions))
        else:
            final = self.build_response(response.text, executions)

        logger.info(f"{self.name} finished: state={state} turns={turns} "
                    f"tools={[e.tool_name for e in executions]} "
                    f"tokens in={usage.input_tokens} out={usage.output_tokens}")
        return AgentRunResult(response=final, tools_executed=executions, usage=usage,
                              turns=turns, state=state)

    def build_response(self, text: str, executions: List[ToolExecution]) -> AgentResponse:
        return synthesize_response(text, executions)


class TaskAgent(BaseAgent):
    name = 'TaskAgent'
    instructions = TASK_INSTRUCTIONS
    tool_names = TASK_TOOLS


class ContentAgent(BaseAgent):
    name = 'ContentAgent'
    instructions = CONTENT_INSTRUCTIONS
    tool_names = CONTENT_TOOLS


class CommunicationAgent(BaseAgent):
    """Attaches approval buttons for drafts and a summary for channel checks."""

    name = 'CommunicationAgent'
    instructions = COMMUNICATION_INSTRUCTIONS
    tool_names = COMMUNICATION_TOOLS

    def build_response(self, text: str, executions: List[ToolExecution]) -> AgentResponse:
        response = super().build_response(text, executions)
        successful = [e for e in executions if e.result.success]

        drafts = [e for e in successful if e.tool_name == ToolName.DRAFT_CLIENT_MESSAGE]
        if drafts and isinstance(drafts[-1].result.data, ApprovalCreated):
            data = drafts[-1].result.data
            response.blocks = build_approval_blocks(data.approval_id, data.channel_id, text)
            response.action = ResponseAction.CREATE_APPROVAL
            response.metadata.update({'approval_id': data.approval_id, 'target_channel': data.channel_id})
            return response

        checks = [e for e in successful if e.tool_name == ToolName.CHECK_UNANSWERED_MESSAGES]
        if checks:
            response.blocks = build_channel_check_blocks(checks[-1].result.data_dict())
        return response
