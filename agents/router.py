"""Intent router: one forced classify_intent call per operator message.

Classification never raises. A failed call, a missing or malformed
classification, or an intent outside the closed set all degrade to
GENERAL_QUERY, which the general path can always answer.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict

from pydantic import ValidationError

from .instructions import ROUTER_INSTRUCTIONS
from .llm import LLMClient, get_llm
from .schemas import AgentContext, Intent, ClassifyIntentInput, CLASSIFY_TOOL, CLASSIFY_TOOL_NAME

logger = logging.getLogger('agent.router')


@dataclass
class RouterResult:
    intent: Intent
    confidence: float
    params: Dict[str, Any] = field(default_factory=dict)


def _fallback(message: str, confidence: float) -> RouterResult:
    return RouterResult(Intent.GENERAL_QUERY, confidence, {'topic': message})


def classify(message: str, context: AgentContext, llm: LLMClient = None) -> RouterResult:
    llm = llm or get_llm()
    prefix = f"[Channel: {context.channel_id}{' (CLIENT CHANNEL)' if context.is_client_channel else ''}] " \
             f"[Channel type: {context.channel_type}] [User: {context.user_id}]"

    try:
        response = llm.complete(ROUTER_INSTRUCTIONS, [{'role': 'user', 'content': f"{prefix}\n\n{message}"}],
                                tools=[CLASSIFY_TOOL], tool_choice=CLASSIFY_TOOL_NAME, max_tokens=512)
    except Exception:
        logger.exception('Router classification failed')
        return _fallback(message, 0.3)

    call = next((c for c in response.tool_calls if c.name == CLASSIFY_TOOL_NAME), None)
    if call is None or call.arguments is None:
        logger.warning(f"Router did not return a classification: {response.text[:200]!r}")
        return _fallback(message, 0.3)

    raw_intent = call.arguments.get('intent')
    if raw_intent is not None and raw_intent not in {i.value for i in Intent}:
        logger.warning(f"Router returned unknown intent {raw_intent!r}")
        return _fallback(message, 0.5)

    try:
        classification = ClassifyIntentInput.model_validate(call.arguments)
    except ValidationError as e:
        logger.warning(f"Router returned a malformed classification: {e}")
        return _fallback(message, 0.3)

    logger.info(f"Message classified as {classification.intent} ({classification.confidence:.2f})")
    return RouterResult(classification.intent, classification.confidence, dict(classification.params))
