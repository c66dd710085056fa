"""Block Kit payload builders for task cards, reminders, digests and approvals."""

from typing import List, Dict, Any, Optional

from db import Task, TeamMember
from .due_dates import format_deadline, time_until_deadline

PRIORITY_EMOJI = {
    'low': ':white_circle:',
    'normal': ':large_blue_circle:',
    'high': ':large_orange_circle:',
    'urgent': ':red_circle:',
}

REMINDER_LABELS = {
    '50_percent': ':hourglass_flowing_sand: Halfway Reminder',
    '24_hour': ':warning: 24-Hour Reminder',
    'overdue': ':rotating_light: Overdue Alert',
}

APPROVE_ACTION = 'approval_approve'
EDIT_ACTION = 'approval_edit'
REJECT_ACTION = 'approval_reject'
EDIT_CALLBACK = 'approval_edit_submit'
EDIT_BLOCK = 'message_input'
EDIT_INPUT = 'message_text'


def _mrkdwn(text: str) -> Dict[str, Any]:
    return {"type": "section", "text": {"type": "mrkdwn", "text": text}}


def _fields(*texts: str) -> Dict[str, Any]:
    return {"type": "section", "fields": [{"type": "mrkdwn", "text": t} for t in texts]}


def _header(text: str) -> Dict[str, Any]:
    return {"type": "header", "text": {"type": "plain_text", "text": text, "emoji": True}}


def _context(text: str) -> Dict[str, Any]:
    return {"type": "context", "elements": [{"type": "mrkdwn", "text": text}]}


def build_task_card(task: Task, assignee: TeamMember) -> List[Dict[str, Any]]:
    """Card posted when a task is assigned."""
    if task.deadline:
        deadline_text = f"{format_deadline(task.deadline)} ({time_until_deadline(task.deadline)})"
    else:
        deadline_text = 'No deadline set'

    blocks = [
        _header('New Task Assigned'),
        _fields(
            f"*Assigned to:*\n<@{assignee.slack_user_id}>",
            f"*Priority:*\n{PRIORITY_EMOJI.get(task.priority, ':white_circle:')} {task.priority}",
        ),
        _mrkdwn(f"*Task:*\n{task.title}"),
    ]
    if task.description:
        blocks.append(_mrkdwn(f"*Details:*\n{task.description}"))
    blocks.extend([
        _fields(f"*Deadline:*\n{deadline_text}", f"*Status:*\n{task.status}"),
        _context(f"Task ID: `{task.id}` | Let me know once you've started!"),
        {"type": "divider"},
    ])
    return blocks


def build_reminder_blocks(task: Task, assignee: TeamMember, reminder_type: str) -> List[Dict[str, Any]]:
    deadline_text = format_deadline(task.deadline) if task.deadline else 'No deadline'
    remaining = time_until_deadline(task.deadline) if task.deadline else 'N/A'

    blocks = [
        _header(REMINDER_LABELS.get(reminder_type, 'Reminder')),
        _mrkdwn(f"<@{assignee.slack_user_id}> *{task.title}*"),
        _fields(f"*Deadline:*\n{deadline_text}", f"*Time remaining:*\n{remaining}"),
    ]
    if task.description:
        blocks.append(_context(task.description[:200]))
    blocks.append({"type": "divider"})
    return blocks


def build_overdue_digest_blocks(tasks: List[Task]) -> List[Dict[str, Any]]:
    """One digest for every task flagged in a sweep; lists at most 10."""
    count = len(tasks)
    blocks = [
        _header(':rotating_light: Overdue Tasks Digest'),
        _mrkdwn(f"You have *{count}* overdue task{'s' if count != 1 else ''}:"),
        {"type": "divider"},
    ]
    for task in tasks[:10]:
        assignee_text = f"<@{task.assignee.slack_user_id}>" if task.assignee else 'Unassigned'
        deadline_text = format_deadline(task.deadline) if task.deadline else 'No deadline'
        blocks.append(_mrkdwn(
            f":red_circle: *{task.title}*\nAssigned to: {assignee_text} | Was due: {deadline_text}"
        ))
    if count > 10:
        blocks.append(_context(f"+ {count - 10} more"))
    return blocks


def build_approval_blocks(approval_id: int, target_channel: str, draft_message: str) -> List[Dict[str, Any]]:
    """Approval request with Approve / Edit / Reject buttons."""
    quoted = '\n'.join(f"> {line}" for line in draft_message.split('\n'))
    value = str(approval_id)
    return [
        _header('Approval Required'),
        _mrkdwn(f"*Target channel:* <#{target_channel}>"),
        _mrkdwn(f"*Draft message:*\n{quoted}"),
        {
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "Approve", "emoji": True},
                    "style": "primary",
                    "action_id": APPROVE_ACTION,
                    "value": value,
                },
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "Edit", "emoji": True},
                    "action_id": EDIT_ACTION,
                    "value": value,
                },
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "Reject", "emoji": True},
                    "style": "danger",
                    "action_id": REJECT_ACTION,
                    "value": value,
                },
            ],
        },
    ]


def build_approval_result_blocks(target_channel: str, status: str,
                                 message: Optional[str] = None) -> List[Dict[str, Any]]:
    if status == 'approved':
        emoji, status_text = ':white_check_mark:', 'Approved and sent'
    else:
        emoji, status_text = ':x:', 'Rejected'
    text = f"{emoji} *{status_text}* | Target: <#{target_channel}>"
    if message:
        text += f"\n> {message[:200]}"
    return [_mrkdwn(text)]


def build_edit_modal(approval_id: int, target_channel: str, draft_message: str) -> Dict[str, Any]:
    return {
        "type": "modal",
        "callback_id": EDIT_CALLBACK,
        "private_metadata": str(approval_id),
        "title": {"type": "plain_text", "text": "Edit Message"},
        "submit": {"type": "plain_text", "text": "Update & Approve"},
        "close": {"type": "plain_text", "text": "Cancel"},
        "blocks": [
            _mrkdwn(f"*Target:* <#{target_channel}>"),
            {
                "type": "input",
                "block_id": EDIT_BLOCK,
                "label": {"type": "plain_text", "text": "Message"},
                "element": {
                    "type": "plain_text_input",
                    "action_id": EDIT_INPUT,
                    "multiline": True,
                    "initial_value": draft_message,
                },
            },
        ],
    }


def build_channel_check_blocks(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Summary of a check_unanswered_messages scan."""
    total = data.get('total_unanswered', 0)
    channels = data.get('unanswered_by_channel', [])
    skipped = data.get('skipped', [])
    scanned = data.get('channels_scanned', 0)

    if total == 0:
        blocks = [_mrkdwn(f":white_check_mark:  *All clear*: scanned *{scanned}* channels, no unanswered messages.")]
        if skipped:
            blocks.append(_context(f":lock: {len(skipped)} channel(s) could not be read"))
        return blocks

    if total >= 10:
        urgency = ':rotating_light:'
    elif total >= 5:
        urgency = ':warning:'
    else:
        urgency = ':mailbox_with_mail:'

    blocks = [
        _header(f"{urgency}  {total} Unanswered Message{'s' if total != 1 else ''} Found"),
        _context(f"*{scanned}* channels scanned  |  *{len(channels)}* with unanswered messages"),
        {"type": "divider"},
    ]

    for channel in channels[:10]:
        messages = channel['messages']
        blocks.append(_mrkdwn(f":speech_balloon:  <#{channel['channel_id']}>  ·  *{len(messages)}* unanswered"))
        lines = []
        for m in messages[:5]:
            preview = m['text'] if len(m['text']) <= 100 else m['text'][:100] + '…'
            lines.append(f"> <@{m['user']}>  _{m['age']}_\n> {preview}")
        blocks.append(_mrkdwn('\n\n'.join(lines)))
        if len(messages) > 5:
            blocks.append(_context(f"+ {len(messages) - 5} more in this channel"))
        blocks.append({"type": "divider"})

    if len(channels) > 10:
        blocks.append(_context(f"+ *{len(channels) - 10}* more channels with unanswered messages"))
    if skipped:
        blocks.append(_context(f":lock: {len(skipped)} channel(s) could not be read; invite the bot to access them"))
    return blocks
