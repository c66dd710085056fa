"""Top-level entry point for operator instructions.

Meta-commands (model switch and model status) are answered before
routing. Everything else is classified by the router and handed to
exactly one specialist, except GENERAL_QUERY which is a single plain
model call seeded with the thread history.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

from core.errors import handle_error
from . import llm as llm_state
from .agent import AgentResponse, TaskAgent, ContentAgent, CommunicationAgent
from .instructions import GENERAL_INSTRUCTIONS
from .llm import LLMClient, get_llm
from .router import classify
from .schemas import AgentContext, Intent

logger = logging.getLogger('agent.orchestrator')

# "switch to mini", "use gpt4o", "model gpt41", "switch model to mini"
MODEL_SWITCH_PATTERN = re.compile(r'^(?:switch\s+(?:to\s+|model\s+(?:to\s+)?)?|use\s+|model\s+)(\w+)\s*$',
                                  re.IGNORECASE)
MODEL_STATUS_PATTERN = re.compile(r'^(?:what\s+model|which\s+model|current\s+model|model\s*\?)\s*$',
                                  re.IGNORECASE)

TASK_INTENTS = {Intent.TASK_ASSIGN, Intent.TASK_STATUS, Intent.TASK_COMPLETE}
COMMUNICATION_INTENTS = {Intent.COMMUNICATION_SEND, Intent.COMMUNICATION_DRAFT, Intent.CHANNEL_CHECK}


def enrich_message(original: str, params: Dict[str, Any]) -> str:
    """Append router parameters after the untouched original instruction."""
    entries = [(key, value) for key, value in params.items() if value is not None]
    if not entries:
        return original
    lines = '\n'.join(f"  {key}: {json.dumps(value)}" for key, value in entries)
    return f"{original}\n\n[Router extracted parameters:\n{lines}\n]"


def escalation_message(original: str, params: Dict[str, Any]) -> str:
    summary = params.get('summary') or original
    urgency = params.get('urgency') or 'high'
    return (f'ESCALATION detected. The founder said: "{original}"\n\n'
            f"Summary: {summary}\nUrgency: {urgency}\n\n"
            "Use dm_founder to alert the founder about this escalation, then respond confirming what you did.")


def handle_meta_command(message: str) -> Optional[AgentResponse]:
    """Answer model switch and model status commands, or None for anything else."""
    text = message.strip()

    match = MODEL_SWITCH_PATTERN.match(text)
    if match:
        result = llm_state.set_model(match.group(1))
        logger.info(f"Model switch requested: success={result['success']} model={result['model']}")
        return AgentResponse(text=result['message'])

    if MODEL_STATUS_PATTERN.match(text):
        current = llm_state.get_active_model_name()
        available = ', '.join(llm_state.get_available_models())
        return AgentResponse(text=f"Currently using *{current}*. Available models: {available}.\n\n"
                                  'Say "switch to mini" or "use gpt4o" to change.')
    return None


class Orchestrator:
    def __init__(self, llm: LLMClient = None):
        self._llm = llm
        self.task_agent = TaskAgent(llm)
        self.content_agent = ContentAgent(llm)
        self.communication_agent = CommunicationAgent(llm)

    @property
    def llm(self) -> LLMClient:
        return self._llm or get_llm()

    def handle(self, message: str, context: AgentContext) -> AgentResponse:
        """Process one operator instruction and return the reply.

        Never raises: total failure becomes the single fallback message.
        """
        meta = handle_meta_command(message)
        if meta is not None:
            return meta

        try:
            return self._dispatch(message, context)
        except Exception as e:
            return AgentResponse(text=handle_error(e, 'orchestrator'))

    def _dispatch(self, message: str, context: AgentContext) -> AgentResponse:
        classification = classify(message, context, llm=self.llm)
        logger.info(f"Orchestrator: {classification.intent} ({classification.confidence:.2f})")
        params = classification.params

        if classification.intent in TASK_INTENTS:
            result = self.task_agent.run(enrich_message(message, params), context)
        elif classification.intent == Intent.CONTENT_REWRITE:
            result = self.content_agent.run(enrich_message(message, params), context)
        elif classification.intent in COMMUNICATION_INTENTS:
            result = self.communication_agent.run(enrich_message(message, params), context)
        elif classification.intent == Intent.ESCALATION:
            result = self.communication_agent.run(escalation_message(message, params), context)
        else:
            messages = list(context.thread_history) + [{'role': 'user', 'content': message}]
            return AgentResponse(text=self.llm.chat(GENERAL_INSTRUCTIONS, messages))

        logger.info(f"Orchestrator: {classification.intent} handled in {result.turns} turn(s), "
                    f"tools={[e.tool_name for e in result.tools_executed]}")
        return result.response


# Global singleton instance
_default_orchestrator: Optional[Orchestrator] = None


def get_orchestrator() -> Orchestrator:
    """Get or create the default Orchestrator instance."""
    global _default_orchestrator
    if _default_orchestrator is None:
        _default_orchestrator = Orchestrator()
    return _default_orchestrator
