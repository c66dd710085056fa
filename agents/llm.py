"""Capability client: chat completions with tools over the OpenAI SDK.

Model selection is process-wide state. It is set at startup from
OPENAI_MODEL, changed only by the operator's "switch to <model>"
meta-command (via set_model), and read by every call. A call that keeps
failing on the active model falls back through OPENAI_FALLBACK_MODELS;
when every tier fails, CapabilityError is raised.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import openai
from openai import OpenAI

from core import config
from core.errors import CapabilityError

logger = logging.getLogger('agent.llm')

# Short operator-facing names for the models that can be switched to.
AVAILABLE_MODELS = {
    'gpt4o': 'gpt-4o',
    'mini': 'gpt-4o-mini',
    'gpt41': 'gpt-4.1',
}

TRANSIENT_ERRORS = (
    openai.RateLimitError,
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.InternalServerError,
)

_active_model: str = config.OPENAI_MODEL


def get_active_model() -> str:
    return _active_model


def get_active_model_name() -> str:
    for name, model_id in AVAILABLE_MODELS.items():
        if model_id == _active_model:
            return name
    return _active_model


def get_available_models() -> Dict[str, str]:
    return dict(AVAILABLE_MODELS)


def set_model(name_or_id: str) -> Dict[str, Any]:
    """Switch the active model by short name or full model id.

    Returns:
        {'success', 'model', 'message'}; the active model is unchanged on failure
    """
    global _active_model
    lower = name_or_id.strip().lower()

    if lower in AVAILABLE_MODELS:
        _active_model = AVAILABLE_MODELS[lower]
        logger.info(f"Active model switched to {_active_model}")
        return {'success': True, 'model': _active_model, 'message': f"Switched to *{lower}* (`{_active_model}`)"}

    for name, model_id in AVAILABLE_MODELS.items():
        if model_id == lower:
            _active_model = model_id
            logger.info(f"Active model switched to {_active_model}")
            return {'success': True, 'model': _active_model, 'message': f"Switched to *{name}* (`{_active_model}`)"}

    available = ', '.join(AVAILABLE_MODELS)
    return {'success': False, 'model': _active_model,
            'message': f'Unknown model "{name_or_id}". Available: {available}'}


def reset_model() -> None:
    """Restore the startup model from configuration."""
    global _active_model
    _active_model = config.OPENAI_MODEL


@dataclass
class ToolCallRequest:
    id: str
    name: str
    arguments: Optional[Dict[str, Any]]
    raw_arguments: str = '{}'


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class LLMResponse:
    text: str = ''
    tool_calls: List[ToolCallRequest] = field(default_factory=list)
    stop_reason: str = 'end_turn'  # end_turn, tool_use, max_tokens
    usage: Usage = field(default_factory=Usage)
    model: Optional[str] = None

    def as_message(self) -> Dict[str, Any]:
        """Assistant transcript entry for this response."""
        message = {'role': 'assistant', 'content': self.text or None}
        if self.tool_calls:
            message['tool_calls'] = [
                {
                    'id': call.id,
                    'type': 'function',
                    'function': {'name': call.name, 'arguments': call.raw_arguments},
                }
                for call in self.tool_calls
            ]
        return message


def to_openai_tools(catalog: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Convert {name, description, input_schema} entries to OpenAI function tools."""
    return [
        {
            'type': 'function',
            'function': {
                'name': tool['name'],
                'description': tool['description'],
                'parameters': tool['input_schema'],
            },
        }
        for tool in catalog
    ]


def tool_result_message(call_id: str, content: str) -> Dict[str, Any]:
    return {'role': 'tool', 'tool_call_id': call_id, 'content': content}


def _parse_completion(completion: Any, model: str) -> LLMResponse:
    choice = completion.choices[0]
    message = choice.message

    calls = []
    for call in message.tool_calls or []:
        raw = call.function.arguments or '{}'
        try:
            arguments = json.loads(raw)
        except json.JSONDecodeError:
            arguments = None
        if arguments is not None and not isinstance(arguments, dict):
            arguments = None
        calls.append(ToolCallRequest(id=call.id, name=call.function.name, arguments=arguments, raw_arguments=raw))

    if calls:
        stop_reason = 'tool_use'
    elif choice.finish_reason == 'length':
        stop_reason = 'max_tokens'
    else:
        stop_reason = 'end_turn'

    usage = Usage()
    if getattr(completion, 'usage', None):
        usage = Usage(input_tokens=completion.usage.prompt_tokens or 0,
                      output_tokens=completion.usage.completion_tokens or 0)

    return LLMResponse(text=message.content or '', tool_calls=calls, stop_reason=stop_reason,
                       usage=usage, model=model)


class LLMClient:
    """Chat-completions client with per-tier retry and an ordered fallback list."""

    def __init__(self, client: OpenAI = None, max_attempts: int = None,
                 fallback_models: List[str] = None, backoff: float = 0.5):
        # SDK retries are disabled so attempts are counted here, per tier.
        self.client = client or OpenAI(api_key=config.OPENAI_API_KEY or None, max_retries=0)
        self.max_attempts = max_attempts or config.LLM_MAX_ATTEMPTS
        self.fallback_models = fallback_models if fallback_models is not None else config.OPENAI_FALLBACK_MODELS
        self.backoff = backoff

    def _tiers(self, model: str) -> List[str]:
        return [model] + [m for m in self.fallback_models if m != model]

    def complete(self, system: str, messages: List[Dict[str, Any]],
                 tools: Optional[List[Dict[str, Any]]] = None,
                 tool_choice: Optional[str] = None,
                 max_tokens: int = 4096, temperature: float = 0.3,
                 model: Optional[str] = None) -> LLMResponse:
        """Send a system prompt, transcript and optional tool catalog.

        Args:
            system: System prompt
            messages: Transcript in chat-completions format
            tools: Catalog of {name, description, input_schema}
            tool_choice: Name of a tool the model must call
            max_tokens: Output cap
            temperature: Sampling temperature
            model: Override the active model for this call

        Returns:
            Parsed LLMResponse

        Raises:
            CapabilityError: Every attempt on every tier failed
        """
        request = {
            'messages': [{'role': 'system', 'content': system}] + list(messages),
            'max_tokens': max_tokens,
            'temperature': temperature,
        }
        if tools:
            request['tools'] = to_openai_tools(tools)
            if tool_choice:
                request['tool_choice'] = {'type': 'function', 'function': {'name': tool_choice}}

        primary = model or get_active_model()
        last_error = None
        for tier, tier_model in enumerate(self._tiers(primary)):
            if tier > 0:
                logger.info(f"Falling back from {primary} to {tier_model}")
            attempts = self.max_attempts if tier == 0 else 1
            for attempt in range(1, attempts + 1):
                try:
                    completion = self.client.chat.completions.create(model=tier_model, **request)
                    response = _parse_completion(completion, tier_model)
                    logger.debug(f"LLM call on {tier_model}: stop={response.stop_reason} "
                                 f"in={response.usage.input_tokens} out={response.usage.output_tokens}")
                    return response
                except TRANSIENT_ERRORS as e:
                    last_error = e
                    logger.warning(f"Transient LLM error on {tier_model} (attempt {attempt}/{attempts}): {e}")
                    if attempt < attempts:
                        time.sleep(self.backoff * attempt)
                except Exception as e:
                    last_error = e
                    logger.warning(f"LLM call on {tier_model} failed: {e}")
                    break

        raise CapabilityError(f"All models failed: {last_error}", last_error=last_error)

    def chat(self, system: str, messages: List[Dict[str, Any]], max_tokens: int = 1024) -> str:
        """Plain text completion without tools."""
        return self.complete(system, messages, max_tokens=max_tokens).text


# Global singleton instance
_default_llm: Optional[LLMClient] = None


def get_llm() -> LLMClient:
    """Get or create the default LLMClient instance."""
    global _default_llm
    if _default_llm is None:
        _default_llm = LLMClient()
    return _default_llm


def set_llm(llm: Optional[LLMClient]) -> None:
    global _default_llm
    _default_llm = llm
