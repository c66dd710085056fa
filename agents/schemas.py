"""Closed tool set, validated tool inputs and the per-agent tool catalogs.

Every tool is a ToolName member with exactly one pydantic input model.
Catalog entries are {name, description, input_schema} with the schema
generated from the input model, so the model-facing schema and the
validation applied before dispatch can never drift apart.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, Field, ValidationError

from core.errors import ToolInputError


class ToolName(str, Enum):
    # Task tools
    CREATE_TASK = "create_task"
    GET_TASKS = "get_tasks"
    COMPLETE_TASK = "complete_task"
    POST_TO_SLACK = "post_to_slack"
    LOOKUP_TEAM_MEMBER = "lookup_team_member"
    # Content tools
    REWRITE_CONTENT = "rewrite_content"
    GENERATE_VARIATIONS = "generate_variations"
    ADAPT_FOR_PLATFORM = "adapt_for_platform"
    # Communication tools
    DRAFT_CLIENT_MESSAGE = "draft_client_message"
    SEND_INTERNAL_MESSAGE = "send_internal_message"
    SEARCH_CHANNEL_HISTORY = "search_channel_history"
    LOOKUP_CHANNEL = "lookup_channel"
    SCHEDULE_MESSAGE = "schedule_message"
    DM_FOUNDER = "dm_founder"
    CHECK_UNANSWERED_MESSAGES = "check_unanswered_messages"

    def __str__(self):
        return self.value


class Intent(str, Enum):
    TASK_ASSIGN = "TASK_ASSIGN"
    TASK_STATUS = "TASK_STATUS"
    TASK_COMPLETE = "TASK_COMPLETE"
    CONTENT_REWRITE = "CONTENT_REWRITE"
    COMMUNICATION_SEND = "COMMUNICATION_SEND"
    COMMUNICATION_DRAFT = "COMMUNICATION_DRAFT"
    CHANNEL_CHECK = "CHANNEL_CHECK"
    ESCALATION = "ESCALATION"
    GENERAL_QUERY = "GENERAL_QUERY"

    def __str__(self):
        return self.value


class ToolInput(BaseModel):
    model_config = {'extra': 'ignore'}


# ===== Task tools =====

class CreateTaskInput(ToolInput):
    assignee_name: str = Field(description='Name of the team member to assign the task to')
    title: str = Field(description='Short, clear task title (under 100 chars)')
    description: str = Field(description='Detailed description of what needs to be done')
    deadline: Optional[str] = Field(None, description='Deadline as ISO date string or natural language '
                                                      '(e.g., "Friday", "2026-03-01", "in 3 days")')
    priority: Literal['low', 'normal', 'high', 'urgent'] = Field('normal', description='Task priority level')
    channel_id: Optional[str] = Field(None, description='Optional: channel the task belongs to')


class GetTasksInput(ToolInput):
    person_name: Optional[str] = Field(None, description='Filter by team member name. Omit to get all tasks.')
    scope: Literal['active', 'overdue', 'this_week', 'all'] = Field(
        'active', description='Scope of tasks to return. Default: active')


class CompleteTaskInput(ToolInput):
    search_term: str = Field(description='Part of the task title to search for')
    person_name: Optional[str] = Field(None, description='Optional: narrow search to a specific person')


class PostToSlackInput(ToolInput):
    channel_id: str = Field(description='Slack channel ID to post to')
    message: str = Field(description='Message text to post')
    mention_user_id: Optional[str] = Field(None, description='Optional: Slack user ID to @mention in the message')


class LookupTeamMemberInput(ToolInput):
    name: str = Field(description='Name (or partial name) of the team member')


# ===== Content tools =====

class RewriteContentInput(ToolInput):
    original: str = Field(description='The original content to rewrite')
    platform: Optional[Literal['facebook_ad', 'instagram', 'email', 'slack', 'whatsapp', 'linkedin', 'general']] = \
        Field(None, description='Target platform')
    tone: Optional[Literal['professional', 'casual', 'urgent', 'friendly', 'bold', 'minimal']] = \
        Field(None, description='Desired tone')
    instructions: Optional[str] = Field(None, description='Any specific instructions (e.g., "make it shorter")')


class GenerateVariationsInput(ToolInput):
    content: str = Field(description='The base content to create variations of')
    count: int = Field(3, ge=2, le=5, description='Number of variations to generate (2-5). Default: 3')
    platform: Optional[str] = Field(None, description='Target platform for the variations')
    angle: Optional[str] = Field(None, description='Specific angle or hook to explore (e.g., "urgency")')


class AdaptForPlatformInput(ToolInput):
    content: str = Field(description='The content to adapt')
    from_platform: Optional[str] = Field(None, description='Original platform (if known)')
    to_platform: str = Field(description='Target platform to adapt for')


# ===== Communication tools =====

class DraftClientMessageInput(ToolInput):
    channel_name: str = Field(description='Client channel name or ID')
    context: str = Field(description='What the message should be about')
    tone: Literal['warm', 'professional', 'excited', 'apologetic', 'neutral'] = Field(
        'warm', description='Tone of the message')


class SendInternalMessageInput(ToolInput):
    channel_id: str = Field(description='Internal channel ID to send to')
    message: str = Field(description='Message to send')
    mention_user_id: Optional[str] = Field(None, description='Optional: user to @mention')


class SearchChannelHistoryInput(ToolInput):
    channel_id: str = Field(description='Channel ID to read from')
    limit: int = Field(10, ge=1, le=100, description='Number of recent messages to read (default: 10)')


class LookupChannelInput(ToolInput):
    name: str = Field(description='Channel name (or partial name) to search for')


class ScheduleMessageInput(ToolInput):
    channel_id: str = Field(description='Channel to send to')
    message: str = Field(description='Message content')
    send_at: str = Field(description='When to send (ISO date or natural language like "tomorrow")')


class DmFounderInput(ToolInput):
    message: str = Field(description='Message to send to the founder')
    urgency: Literal['normal', 'high', 'critical'] = Field('normal', description='Urgency level')


class CheckUnansweredMessagesInput(ToolInput):
    channel_name: Optional[str] = Field(
        None, description='Specific channel name or ID to check. Omit to scan all client channels.')
    scope: Optional[Literal['all_client', 'all_internal', 'specific']] = Field(
        None, description='Which channels to scan. Default: all_client')
    hours_back: Optional[int] = Field(None, ge=1, description='How many hours back to look. Default: 24')


# ===== Router =====

class ClassifyIntentInput(ToolInput):
    intent: Intent = Field(description='The classified intent')
    confidence: float = Field(ge=0.0, le=1.0, description='Confidence score 0.0-1.0')
    params: Dict[str, Any] = Field(default_factory=dict,
                                   description='Extracted parameters relevant to the intent')


TOOL_INPUTS: Dict[ToolName, Type[ToolInput]] = {
    ToolName.CREATE_TASK: CreateTaskInput,
    ToolName.GET_TASKS: GetTasksInput,
    ToolName.COMPLETE_TASK: CompleteTaskInput,
    ToolName.POST_TO_SLACK: PostToSlackInput,
    ToolName.LOOKUP_TEAM_MEMBER: LookupTeamMemberInput,
    ToolName.REWRITE_CONTENT: RewriteContentInput,
    ToolName.GENERATE_VARIATIONS: GenerateVariationsInput,
    ToolName.ADAPT_FOR_PLATFORM: AdaptForPlatformInput,
    ToolName.DRAFT_CLIENT_MESSAGE: DraftClientMessageInput,
    ToolName.SEND_INTERNAL_MESSAGE: SendInternalMessageInput,
    ToolName.SEARCH_CHANNEL_HISTORY: SearchChannelHistoryInput,
    ToolName.LOOKUP_CHANNEL: LookupChannelInput,
    ToolName.SCHEDULE_MESSAGE: ScheduleMessageInput,
    ToolName.DM_FOUNDER: DmFounderInput,
    ToolName.CHECK_UNANSWERED_MESSAGES: CheckUnansweredMessagesInput,
}
DESCRIPTIONS = {
    ToolName.CREATE_TASK: 'Create a new task and assign it to a team member. This stores the task '
                          'in the database and schedules reminders.',
    ToolName.GET_TASKS: 'Query tasks from the database. Can filter by person or deadline scope.',
    ToolName.COMPLETE_TASK: 'Mark a task as completed. Cancels any pending reminders for the task.',
    ToolName.POST_TO_SLACK: 'Post a message to a specific internal Slack channel. Client channels are refused.',
    ToolName.LOOKUP_TEAM_MEMBER: 'Find a team member by name. Returns their Slack user ID and role.',
    ToolName.REWRITE_CONTENT: 'Rewrite content with a specific tone, platform, and style.',
    ToolName.GENERATE_VARIATIONS: 'Generate multiple distinct variations of content, e.g. ad copy or subject lines.',
    ToolName.ADAPT_FOR_PLATFORM: 'Adapt existing content for a different platform with proper formatting and length.',
    ToolName.DRAFT_CLIENT_MESSAGE: 'Draft a message for a client channel. This does NOT send it: it creates '
                                   'an approval request for the founder.',
    ToolName.SEND_INTERNAL_MESSAGE: 'Send a message directly to an internal/team channel. No approval needed. '
                                    'Client channels are refused.',
    ToolName.SEARCH_CHANNEL_HISTORY: 'Read recent messages from a channel to understand context before drafting.',
    ToolName.LOOKUP_CHANNEL: 'Look up a channel by name to get its ID, type (client/internal), and whether '
                             'it requires approval.',
    ToolName.SCHEDULE_MESSAGE: 'Schedule a message to be sent at a future time.',
    ToolName.DM_FOUNDER: 'Send a direct message to the founder. Use for escalations and urgent flags.',
    ToolName.CHECK_UNANSWERED_MESSAGES: 'Scan Slack channels for messages with no thread replies. Checks one '
                                        'channel by name/ID, or all client channels at once.',
}

def _clean_schema(node: Any) -> Any:
    """Drop pydantic titles and collapse Optional[...] into the plain type."""
    if isinstance(node, dict):
        node = {k: _clean_schema(v) for k, v in node.items() if k != 'title'}
        any_of = node.get('anyOf')
        if any_of:
            non_null = [option for option in any_of if option.get('type') != 'null']
            if len(non_null) == 1:
                node.pop('anyOf')
                node.update(non_null[0])
        if node.get('default', 0) is None:
            node.pop('default')
        return node
    if isinstance(node, list):
        return [_clean_schema(item) for item in node]
    return node


def input_schema(model: Type[BaseModel]) -> Dict[str, Any]:
    schema = model.model_json_schema()
    defs = schema.pop('$defs', {})
    schema = _clean_schema(schema)
    # Inline enum refs (e.g. Intent) so the catalog is self-contained.
    for prop in schema.get('properties', {}).values():
        ref = prop.pop('$ref', None)
        all_of = prop.pop('allOf', None)
        if all_of and len(all_of) == 1:
            ref = all_of[0].get('$ref')
        if ref:
            prop.update(_clean_schema(defs[ref.split('/')[-1]]))
    schema.setdefault('required', [])
    return schema


def tool_spec(name: ToolName) -> Dict[str, Any]:
    return {
        'name': str(name),
        'description': DESCRIPTIONS[name],
        'input_schema': input_schema(TOOL_INPUTS[name]),
    }


TASK_TOOLS = [ToolName.CREATE_TASK, ToolName.GET_TASKS, ToolName.COMPLETE_TASK,
              ToolName.POST_TO_SLACK, ToolName.LOOKUP_TEAM_MEMBER]
CONTENT_TOOLS = [ToolName.REWRITE_CONTENT, ToolName.GENERATE_VARIATIONS, ToolName.ADAPT_FOR_PLATFORM]
COMMUNICATION_TOOLS = [ToolName.DRAFT_CLIENT_MESSAGE, ToolName.SEND_INTERNAL_MESSAGE,
                       ToolName.SEARCH_CHANNEL_HISTORY, ToolName.LOOKUP_CHANNEL, ToolName.SCHEDULE_MESSAGE,
                       ToolName.DM_FOUNDER, ToolName.CHECK_UNANSWERED_MESSAGES]


def catalog(names: List[ToolName]) -> List[Dict[str, Any]]:
    return [tool_spec(name) for name in names]


CLASSIFY_TOOL_NAME = 'classify_intent'
CLASSIFY_TOOL = {
    'name': CLASSIFY_TOOL_NAME,
    'description': 'Classify the user message into an intent category and extract parameters.',
    'input_schema': input_schema(ClassifyIntentInput),
}


def parse_tool_call(name: str, arguments: Optional[Dict[str, Any]]):
    """Resolve a tool name and validate its input.

    This is the deserialization boundary: unknown names, unparsable JSON
    arguments and schema violations all raise ToolInputError here.

    Returns:
        (ToolName, validated input model)
    """
    try:
        tool = ToolName(name)
    except ValueError:
        raise ToolInputError(name, f"Unknown tool: {name}")
    if arguments is None:
        raise ToolInputError(name, f"Arguments for {name} were not valid JSON")
    try:
        return tool, TOOL_INPUTS[tool].model_validate(arguments)
    except ValidationError as e:
        errors = '; '.join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        raise ToolInputError(name, f"Invalid input for {name}: {errors}")


@dataclass
class AgentContext:
    """Where a request came from; passed to every agent and tool handler."""
    channel_id: str
    user_id: str
    channel_type: str = 'im'
    is_client_channel: bool = False
    thread_ts: Optional[str] = None
    thread_history: List[Dict[str, Any]] = field(default_factory=list)
