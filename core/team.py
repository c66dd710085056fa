"""Team member and channel configuration lookups.

Both tables are small reference data seeded by scripts/seed_team.py.
Name lookups are case-insensitive partial matches, first hit by name.
"""

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from sqlalchemy import func, or_

from db import TeamMember, ChannelConfig
from .storage import get_session

CLIENT_PREFIXES = ('client_', 'client-')
TEAM_PREFIXES = ('team_', 'team-')
# Service tier appended to client channel names
TIER_SUFFIX = re.compile(r'-(?:foundation|momentum|domination|standard|marketing|trial)$')


@dataclass
class ChannelKind:
    channel_type: str
    client_name: Optional[str] = None
    requires_approval: bool = False


def find_member_by_name(name: str) -> Optional[TeamMember]:
    name = (name or '').strip().lstrip('@')
    if not name:
        return None
    with get_session() as session:
        return session.query(TeamMember).filter(
            TeamMember.name.ilike(f"%{name}%")
        ).order_by(TeamMember.name.asc()).first()


def find_channel(name_or_id: str) -> Optional[ChannelConfig]:
    """Resolve a channel by exact id, then by partial channel or client name."""
    term = (name_or_id or '').strip().lstrip('#')
    if not term:
        return None
    with get_session() as session:
        channel = session.query(ChannelConfig).filter(ChannelConfig.channel_id == term).first()
        if channel:
            return channel
        return session.query(ChannelConfig).filter(or_(
            ChannelConfig.channel_name.ilike(f"%{term}%"),
            ChannelConfig.client_name.ilike(f"%{term}%"),
        )).order_by(ChannelConfig.channel_name.asc()).first()


def detect_channel_type(channel_name: str) -> ChannelKind:
    """Classify a Slack channel from its naming convention.

    'client_acme-foundation' -> client channel for "Acme" needing approval,
    'team-design' -> internal, anything else -> general.
    """
    name = (channel_name or '').strip().lstrip('#').lower()
    if name.startswith(CLIENT_PREFIXES):
        raw = TIER_SUFFIX.sub('', name[len('client_'):])
        client_name = ' '.join(word.capitalize() for word in re.split(r'[-_]', raw) if word)
        return ChannelKind('client', client_name or None, True)
    if name.startswith(TEAM_PREFIXES):
        return ChannelKind('internal')
    return ChannelKind('general')


def resolve_channel_target(target: str) -> Tuple[str, Optional[ChannelConfig]]:
    """Map a channel id, name or '#name' to (channel_id, config).

    Only exact id or exact name matches count, so a delivery never lands on
    a different channel than the one asked for. Unknown targets come back
    unchanged with no config.
    """
    term = (target or '').strip().lstrip('#')
    with get_session() as session:
        channel = session.query(ChannelConfig).filter(ChannelConfig.channel_id == term).first()
        if channel is None and term:
            channel = session.query(ChannelConfig).filter(
                func.lower(ChannelConfig.channel_name) == term.lower()
            ).first()
    if channel is not None:
        return channel.channel_id, channel
    return term, None


def is_restricted(channel_id: str, channel: Optional[ChannelConfig]) -> bool:
    """Client channels, channels flagged for approval, and unregistered client_* names."""
    if channel is not None:
        return channel.channel_type == 'client' or bool(channel.requires_approval)
    return detect_channel_type(channel_id).channel_type == 'client'


def is_client_channel(channel_id: str) -> bool:
    """True when the channel is client-facing by configuration or by name.

    Lookup errors propagate; callers that deliver messages treat an error
    the same as a client channel.
    """
    resolved_id, channel = resolve_channel_target(channel_id)
    return is_restricted(resolved_id, channel)
