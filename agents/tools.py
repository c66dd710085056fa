"""Tool handlers the agents can call into the application.

Each handler takes its validated pydantic input and the AgentContext and
returns a ToolResult. Domain problems (unknown person, client channel,
unparsable date) come back as failed results with guidance; unexpected
exceptions propagate to the agent loop, which isolates them per tool.
"""
import logging
import time
from datetime import timezone
from typing import Callable, Dict, List, Optional, Tuple

from core import config
from core import approvals
from core.audit import log_audit, AuditAction
from core.blocks import build_task_card
from core.due_dates import parse_deadline, format_deadline, format_datetime, time_until_deadline
from core.errors import SlackAPIError, ToolInputError
from core.scheduling import create_reminders_for_task, complete_task
from core.slack import get_slack, notify
from core.storage import (
    create_task, list_tasks, find_active_tasks, list_team_members, list_channel_configs,
)
from core.task import TaskPriority
from core.team import find_member_by_name, find_channel, resolve_channel_target, is_restricted
from db import utcnow
from .results import (
    ToolResult, TaskCreated, TaskSummary, TaskList, TaskCompleted, MemberInfo, ChannelInfo,
    Available, ApprovalCreated, MessageSent, MessageScheduled, ChannelMessage, ChannelHistory,
    UnansweredChannel, UnansweredScan, ContentEcho,
)
from .schemas import (
    ToolName, AgentContext, parse_tool_call,
    CreateTaskInput, GetTasksInput, CompleteTaskInput, PostToSlackInput, LookupTeamMemberInput,
    ToolInput, DraftClientMessageInput, SendInternalMessageInput, SearchChannelHistoryInput,
    LookupChannelInput, ScheduleMessageInput, DmFounderInput, CheckUnansweredMessagesInput,
)

logger = logging.getLogger('agent.tools')

URGENCY_PREFIX = {
    'normal': '',
    'high': ':warning: *HIGH PRIORITY* - ',
    'critical': ':rotating_light: *CRITICAL* - ',
}

SCOPE_LABELS = {
    'active': 'Active tasks',
    'overdue': 'Overdue tasks',
    'this_week': 'Tasks due this week',
    'all': 'All tasks',
}

HISTORY_TEXT_LIMIT = 300
UNANSWERED_TEXT_LIMIT = 200
UNANSWERED_READ_LIMIT = 50


def _member_names() -> List[str]:
    return [m.name for m in list_team_members()]


def _unknown_member(name: str) -> ToolResult:
    names = _member_names()
    return ToolResult.failure(
        f'No team member found matching "{name}". Available: {", ".join(names) or "none"}',
        Available(available=names),
    )


def _with_mention(message: str, mention_user_id: Optional[str]) -> str:
    return f"<@{mention_user_id}> {message}" if mention_user_id else message


def _resolve_delivery_channel(target: str) -> Tuple[str, Optional[ToolResult]]:
    """Resolve a channel id or name for a direct send.

    Returns (channel_id, refusal). Client channels, however they are named,
    and channels that cannot be checked are refused.
    """
    channel_id = (target or '').strip().lstrip('#')
    try:
        channel_id, channel = resolve_channel_target(target)
        restricted = is_restricted(channel_id, channel)
    except Exception:
        logger.exception(f"Channel lookup failed for {channel_id}; refusing to send")
        return channel_id, ToolResult.failure(
            f"Could not verify whether <#{channel_id}> is a client channel, so nothing was sent. "
            "Use draft_client_message if this is a client channel.")
    if restricted:
        return channel_id, ToolResult.failure(
            f"<#{channel_id}> is a client channel. Use draft_client_message instead; "
            "client channels require founder approval.")
    return channel_id, None


def _send_internal(target: str, message: str, mention_user_id: Optional[str],
                   context: AgentContext) -> ToolResult:
    channel_id, refusal = _resolve_delivery_channel(target)
    if refusal:
        return refusal

    try:
        ts = get_slack().post_message(channel_id, _with_mention(message, mention_user_id))
    except SlackAPIError as e:
        return ToolResult.failure(f"Failed to post to <#{channel_id}>: {e.error}")

    log_audit(AuditAction.MESSAGE_SENT, actor=context.user_id,
              details={'message_preview': message[:100]}, channel_id=channel_id)
    return ToolResult(True, f"Message posted to <#{channel_id}>.", MessageSent(channel_id=channel_id, ts=ts))


# ===== Task tools =====

def tool_create_task(params: CreateTaskInput, context: AgentContext) -> ToolResult:
    member = find_member_by_name(params.assignee_name)
    if not member:
        return _unknown_member(params.assignee_name)

    deadline = None
    if params.deadline:
        deadline = parse_deadline(params.deadline)
        if deadline is None:
            return ToolResult.failure(
                f'Could not understand the deadline "{params.deadline}". Use a date like 2026-03-01, '
                'a weekday, "tomorrow" or "in 3 days".')

    task = create_task(
        title=params.title,
        description=params.description,
        assigned_to=member.id,
        assigned_by=context.user_id,
        channel_id=params.channel_id,
        priority=TaskPriority.from_string(params.priority),
        deadline=deadline,
    )
    reminders = create_reminders_for_task(task)
    log_audit(AuditAction.TASK_CREATED, actor=context.user_id, details={
        'task_id': task.id, 'assignee': member.name, 'title': task.title,
    }, channel_id=task.channel_id)

    deadline_text = f"Deadline: {format_deadline(deadline)}." if deadline else 'No deadline set.'
    outcome = notify(task.channel_id or config.FOUNDER_SLACK_ID,
                     f"<@{member.slack_user_id}> New Task: {task.title}. {deadline_text}",
                     blocks=build_task_card(task, member))

    message = f'Task "{task.title}" assigned to {member.name}'
    if deadline:
        message += f", due {format_deadline(deadline)}"
    message += f". {len(reminders)} reminder(s) scheduled."
    if not outcome.delivered:
        message += ' (The task card could not be posted to Slack.)'

    data = TaskCreated(
        task_id=task.id,
        title=task.title,
        assignee=member.name,
        assignee_slack_id=member.slack_user_id,
        deadline=deadline.isoformat() if deadline else None,
        reminders_scheduled=len(reminders),
    )
    return ToolResult(True, message, data, notification=outcome)


def tool_get_tasks(params: GetTasksInput, context: AgentContext) -> ToolResult:
    label = SCOPE_LABELS[params.scope]
    assigned_to = None
    if params.person_name:
        member = find_member_by_name(params.person_name)
        if not member:
            return _unknown_member(params.person_name)
        assigned_to = member.id
        label = f"{label} for {member.name}"

    now = utcnow()
    summaries = []
    for task in list_tasks(params.scope, assigned_to=assigned_to, now=now):
        summaries.append(TaskSummary(
            id=task.id,
            title=task.title,
            assignee=task.assignee.name if task.assignee else 'Unassigned',
            status=task.status,
            priority=task.priority,
            deadline=format_deadline(task.deadline) if task.deadline else 'No deadline',
            time_left=time_until_deadline(task.deadline, now) if task.deadline else None,
        ))

    lines = [f"{label}: {len(summaries)} task(s) found."]
    for s in summaries:
        due = f"{s.deadline} ({s.time_left})" if s.time_left else s.deadline
        lines.append(f"- #{s.id} {s.title} | {s.assignee} | {s.status} | {due}")
    return ToolResult(True, '\n'.join(lines), TaskList(scope=params.scope, tasks=summaries))


def tool_complete_task(params: CompleteTaskInput, context: AgentContext) -> ToolResult:
    assigned_to = None
    if params.person_name:
        member = find_member_by_name(params.person_name)
        if not member:
            return _unknown_member(params.person_name)
        assigned_to = member.id

    matches = find_active_tasks(params.search_term, assigned_to=assigned_to)
    if not matches:
        return ToolResult.failure(f'No active task found matching "{params.search_term}".')

    task, changed = complete_task(matches[0].id, actor=context.user_id)
    if task is None:
        return ToolResult.failure(f'No active task found matching "{params.search_term}".')

    if changed:
        message = f'Task "{task.title}" marked as complete. Reminders cancelled.'
    else:
        message = f'Task "{task.title}" was already {task.status}.'
    return ToolResult(True, message, TaskCompleted(task_id=task.id, title=task.title,
                                                   already_completed=not changed))


def tool_post_to_slack(params: PostToSlackInput, context: AgentContext) -> ToolResult:
    return _send_internal(params.channel_id, params.message, params.mention_user_id, context)


def tool_lookup_team_member(params: LookupTeamMemberInput, context: AgentContext) -> ToolResult:
    member = find_member_by_name(params.name)
    if not member:
        return _unknown_member(params.name)
    role = f" ({member.role})" if member.role else ''
    return ToolResult(True, f"Found: {member.name}{role}, Slack ID: {member.slack_user_id}",
                      MemberInfo(id=member.id, name=member.name, slack_id=member.slack_user_id,
                                 role=member.role))


# ===== Content tools =====

def tool_content_passthrough(params: ToolInput, context: AgentContext) -> ToolResult:
    """Content tools only shape the model's own answer, so they echo their input."""
    return ToolResult(True, 'Content tool: handled by agent text response.',
                      ContentEcho(input=params.model_dump(exclude_none=True)))


# ===== Communication tools =====

def tool_draft_client_message(params: DraftClientMessageInput, context: AgentContext) -> ToolResult:
    channel = find_channel(params.channel_name)
    channel_id = channel.channel_id if channel else params.channel_name.strip().lstrip('#')

    approval = approvals.create_approval(
        requested_by=context.user_id,
        target_channel=channel_id,
        original_instruction=params.context,
        tone=params.tone,
    )
    return ToolResult(
        True,
        f"Approval request created for client channel <#{channel_id}>. "
        "Draft the message and it will be sent to the founder for approval.",
        ApprovalCreated(approval_id=approval.id, channel_id=channel_id),
    )


def tool_send_internal_message(params: SendInternalMessageInput, context: AgentContext) -> ToolResult:
    return _send_internal(params.channel_id, params.message, params.mention_user_id, context)


def tool_search_channel_history(params: SearchChannelHistoryInput, context: AgentContext) -> ToolResult:
    try:
        raw = get_slack().conversations_history(params.channel_id, limit=params.limit)
    except SlackAPIError as e:
        return ToolResult.failure(f"Failed to read <#{params.channel_id}>: {e.error}")

    messages = [
        ChannelMessage(user=m.get('user', 'unknown'), text=(m.get('text') or '')[:HISTORY_TEXT_LIMIT],
                       ts=m.get('ts', ''))
        for m in raw
    ]
    return ToolResult(True, f"Retrieved {len(messages)} recent messages from <#{params.channel_id}>.",
                      ChannelHistory(channel_id=params.channel_id, messages=messages))


def tool_lookup_channel(params: LookupChannelInput, context: AgentContext) -> ToolResult:
    channel = find_channel(params.name)
    if not channel:
        names = [c.channel_name for c in list_channel_configs() if c.channel_name]
        return ToolResult.failure(
            f'No channel found matching "{params.name}". Known channels: {", ".join(names) or "none"}',
            Available(available=names),
        )
    suffix = ', approval required' if channel.requires_approval else ''
    return ToolResult(
        True,
        f"Found: #{channel.channel_name} ({channel.channel_type}{suffix}), ID: {channel.channel_id}",
        ChannelInfo(channel_id=channel.channel_id, name=channel.channel_name, type=channel.channel_type,
                    client_name=channel.client_name, requires_approval=bool(channel.requires_approval)),
    )


def tool_schedule_message(params: ScheduleMessageInput, context: AgentContext) -> ToolResult:
    send_at = parse_deadline(params.send_at)
    if send_at is None:
        return ToolResult.failure(f'Could not parse date: "{params.send_at}"')
    if send_at <= utcnow():
        return ToolResult.failure(f'"{params.send_at}" is not in the future.')

    channel_id, refusal = _resolve_delivery_channel(params.channel_id)
    if refusal:
        return refusal

    post_at = int(send_at.replace(tzinfo=timezone.utc).timestamp())
    try:
        scheduled_id = get_slack().schedule_message(channel_id, params.message, post_at)
    except SlackAPIError as e:
        return ToolResult.failure(f"Failed to schedule: {e.error}")

    log_audit(AuditAction.MESSAGE_SCHEDULED, actor=context.user_id, details={
        'post_at': post_at, 'message_preview': params.message[:100],
    }, channel_id=channel_id)
    return ToolResult(True, f"Message scheduled for {format_datetime(send_at)} in <#{channel_id}>.",
                      MessageScheduled(channel_id=channel_id, post_at=post_at,
                                       scheduled_message_id=scheduled_id))


def tool_dm_founder(params: DmFounderInput, context: AgentContext) -> ToolResult:
    founder_id = config.FOUNDER_SLACK_ID
    if not founder_id:
        return ToolResult.failure('FOUNDER_SLACK_ID is not configured.')

    try:
        ts = get_slack().post_message(founder_id, f"{URGENCY_PREFIX[params.urgency]}{params.message}")
    except SlackAPIError as e:
        return ToolResult.failure(f"Failed to DM founder: {e.error}")

    log_audit(AuditAction.FOUNDER_NOTIFIED, actor=context.user_id,
              details={'urgency': params.urgency, 'message_preview': params.message[:100]})
    return ToolResult(True, 'DM sent to founder.', MessageSent(channel_id=founder_id, ts=ts))


def _age_label(ts: str, now: float) -> str:
    hours = round((now - float(ts)) / 3600)
    return 'less than 1h ago' if hours < 1 else f"{hours}h ago"


def _is_unanswered(message: Dict) -> bool:
    if message.get('subtype') or message.get('bot_id') or 'thread_ts' in message:
        return False
    return not (message.get('reply_count') or 0) > 0


def tool_check_unanswered_messages(params: CheckUnansweredMessagesInput, context: AgentContext) -> ToolResult:
    hours_back = params.hours_back or config.UNANSWERED_LOOKBACK_HOURS
    scope = params.scope or ('specific' if params.channel_name else 'all_client')

    if scope == 'specific':
        if not params.channel_name:
            return ToolResult.failure('channel_name is required to check a specific channel.')
        channel = find_channel(params.channel_name)
        if channel:
            targets = [(channel.channel_id, channel.channel_name or channel.channel_id)]
        else:
            raw_id = params.channel_name.strip().lstrip('#')
            targets = [(raw_id, raw_id)]
    else:
        channel_type = 'internal' if scope == 'all_internal' else 'client'
        targets = [(c.channel_id, c.channel_name or c.channel_id) for c in list_channel_configs(channel_type)]

    if not targets:
        return ToolResult.failure('No channels found to scan.')

    now = time.time()
    oldest = str(int(now - hours_back * 3600))
    scan = UnansweredScan(channels_scanned=len(targets), hours_back=hours_back)

    for channel_id, name in targets:
        try:
            history = get_slack().conversations_history(channel_id, limit=UNANSWERED_READ_LIMIT, oldest=oldest)
        except SlackAPIError as e:
            logger.warning(f"Skipping {name} in unanswered check: {e.error}")
            scan.skipped.append(name)
            continue

        unanswered = [
            ChannelMessage(
                user=m.get('user', 'unknown'),
                text=(m.get('text') or '')[:UNANSWERED_TEXT_LIMIT],
                ts=m['ts'],
                age=_age_label(m['ts'], now),
            )
            for m in history if _is_unanswered(m) and m.get('ts')
        ]
        if unanswered:
            scan.total_unanswered += len(unanswered)
            scan.unanswered_by_channel.append(
                UnansweredChannel(channel=name, channel_id=channel_id, messages=unanswered))

    if scan.total_unanswered == 0:
        message = (f"Scanned {scan.channels_scanned} channel(s): no unanswered messages found "
                   f"in the last {hours_back} hours.")
    else:
        message = (f"Found {scan.total_unanswered} unanswered message(s) across "
                   f"{len(scan.unanswered_by_channel)} channel(s) in the last {hours_back} hours.")
    if scan.skipped:
        message += f" Could not read: {', '.join(scan.skipped)}."
    return ToolResult(True, message, scan)


# Registry of tools the agents can call
TOOLS: Dict[ToolName, Callable[..., ToolResult]] = {
    ToolName.CREATE_TASK: tool_create_task,
    ToolName.GET_TASKS: tool_get_tasks,
    ToolName.COMPLETE_TASK: tool_complete_task,
    ToolName.POST_TO_SLACK: tool_post_to_slack,
    ToolName.LOOKUP_TEAM_MEMBER: tool_lookup_team_member,
    ToolName.REWRITE_CONTENT: tool_content_passthrough,
    ToolName.GENERATE_VARIATIONS: tool_content_passthrough,
    ToolName.ADAPT_FOR_PLATFORM: tool_content_passthrough,
    ToolName.DRAFT_CLIENT_MESSAGE: tool_draft_client_message,
    ToolName.SEND_INTERNAL_MESSAGE: tool_send_internal_message,
    ToolName.SEARCH_CHANNEL_HISTORY: tool_search_channel_history,
    ToolName.LOOKUP_CHANNEL: tool_lookup_channel,
    ToolName.SCHEDULE_MESSAGE: tool_schedule_message,
    ToolName.DM_FOUNDER: tool_dm_founder,
    ToolName.CHECK_UNANSWERED_MESSAGES: tool_check_unanswered_messages,
}

def execute_tool(name: str, arguments: Optional[Dict], context: AgentContext,
                 allowed: Optional[List[ToolName]] = None) -> ToolResult:
    """Validate a model tool call and run its handler.

    Invalid input, unknown tool names and tools outside `allowed` (the
    calling agent's catalog) come back as failed results.
    Exceptions raised by the handler itself propagate.
    """
    try:
        tool, params = parse_tool_call(name, arguments)
    except ToolInputError as e:
        logger.warning(f"Rejected tool call {name}: {e.message}")
        return ToolResult.failure(e.message)
    if allowed is not None and tool not in allowed:
        logger.warning(f"Rejected tool call {tool}: not in the caller's catalog")
        return ToolResult.failure(f"Tool {tool} is not available to this agent.")

    logger.info(f"Executing tool {tool}")
    return TOOLS[tool](params, context)
