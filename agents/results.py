"""Uniform tool result envelope and the typed payload of each tool family.

`message` is always a human-readable summary the agent can quote as is.
`data` is one of the dataclasses below (or None on most failures), never
an ad-hoc dict, so callers can rely on its shape.
"""

import json
from dataclasses import dataclass, field, asdict, is_dataclass
from typing import Any, Dict, List, Optional, Union

from core.slack import NotificationOutcome


@dataclass
class TaskCreated:
    task_id: int
    title: str
    assignee: str
    assignee_slack_id: str
    deadline: Optional[str] = None
    reminders_scheduled: int = 0


@dataclass
class TaskSummary:
    id: int
    title: str
    assignee: str
    status: str
    priority: str
    deadline: str
    time_left: Optional[str] = None


@dataclass
class TaskList:
    scope: str
    tasks: List[TaskSummary] = field(default_factory=list)


@dataclass
class TaskCompleted:
    task_id: int
    title: str
    already_completed: bool = False


@dataclass
class MemberInfo:
    id: int
    name: str
    slack_id: str
    role: Optional[str] = None


@dataclass
class ChannelInfo:
    channel_id: str
    name: str
    type: str
    client_name: Optional[str] = None
    requires_approval: bool = False


@dataclass
class Available:
    """Enumeration returned with a failed lookup so the model can retry."""
    available: List[str] = field(default_factory=list)


@dataclass
class ApprovalCreated:
    approval_id: int
    channel_id: str
    requires_approval: bool = True


@dataclass
class MessageSent:
    channel_id: str
    ts: Optional[str] = None


@dataclass
class MessageScheduled:
    channel_id: str
    post_at: int
    scheduled_message_id: Optional[str] = None


@dataclass
class ChannelMessage:
    user: str
    text: str
    ts: str
    age: Optional[str] = None


@dataclass
class ChannelHistory:
    channel_id: str
    messages: List[ChannelMessage] = field(default_factory=list)


@dataclass
class UnansweredChannel:
    channel: str
    channel_id: str
    messages: List[ChannelMessage] = field(default_factory=list)


@dataclass
class UnansweredScan:
    channels_scanned: int
    hours_back: int
    total_unanswered: int = 0
    unanswered_by_channel: List[UnansweredChannel] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


@dataclass
class ContentEcho:
    """Content tools return their input; the agent's text is the real output."""
    input: Dict[str, Any] = field(default_factory=dict)


ResultData = Union[TaskCreated, TaskList, TaskCompleted, MemberInfo, ChannelInfo, Available,
                   ApprovalCreated, MessageSent, MessageScheduled, ChannelHistory, UnansweredScan,
                   ContentEcho, None]


@dataclass
class ToolResult:
    success: bool
    message: str
    data: ResultData = None
    notification: Optional[NotificationOutcome] = None

    @classmethod
    def failure(cls, message: str, data: ResultData = None) -> 'ToolResult':
        return cls(success=False, message=message, data=data)

    def data_dict(self) -> Dict[str, Any]:
        if is_dataclass(self.data):
            return asdict(self.data)
        return {}

    def to_json(self) -> str:
        """Serialized form fed back to the model as the tool result."""
        return json.dumps({
            'success': self.success,
            'message': self.message,
            'data': self.data_dict() or None,
        }, default=str)
