"""Channel auto-registration.

Channels the bot joins, or that are created while it runs, are stored in
channel_config with a type detected from their name, so a new client_*
channel is guarded as a client channel without anyone seeding it first.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from db import ChannelConfig
from .errors import SlackAPIError
from .slack import get_slack
from .storage import get_channel_config, save_channel_config
from .team import detect_channel_type

logger = logging.getLogger(__name__)

# conversations.join errors that mean "cannot be joined", not a transport failure
UNJOINABLE_ERRORS = ('method_not_supported_for_channel_type', 'channel_not_found', 'is_archived')


@dataclass
class ChannelSync:
    joined: int = 0
    already_in: int = 0
    skipped: int = 0


def register_channel(channel_id: str, channel_name: str) -> ChannelConfig:
    """Store a channel with the type its name implies."""
    kind = detect_channel_type(channel_name)
    channel = save_channel_config(channel_id, channel_name, kind.channel_type,
                                  client_name=kind.client_name, requires_approval=kind.requires_approval)
    logger.info(f"Registered channel #{channel_name} ({channel_id}) as {kind.channel_type}")
    return channel


def join_channel(channel_id: str) -> bool:
    """Join a public channel. Being a member already counts as success."""
    try:
        get_slack().conversations_join(channel_id)
    except SlackAPIError as e:
        if e.error == 'already_in_channel':
            return True
        if e.error in UNJOINABLE_ERRORS:
            logger.info(f"Cannot join {channel_id}: {e.error}")
        else:
            logger.warning(f"Could not join {channel_id}: {e.error}")
        return False
    return True


def handle_member_joined(event: Dict[str, Any]) -> Optional[ChannelConfig]:
    """member_joined_channel: register the channel when the bot itself joined it.

    Existing configuration is never overwritten, so seeded types win.
    """
    channel_id = event.get('channel')
    if not channel_id:
        return None
    bot_user_id = get_slack().auth_test().get('user_id')
    if event.get('user') != bot_user_id:
        return None
    if get_channel_config(channel_id) is not None:
        return None

    name = get_slack().conversations_info(channel_id).get('name') or 'unknown'
    return register_channel(channel_id, name)


def handle_channel_created(event: Dict[str, Any]) -> Optional[ChannelConfig]:
    """channel_created: join the new channel and register it."""
    channel = event.get('channel') or {}
    channel_id = channel.get('id')
    if not channel_id:
        return None
    if not join_channel(channel_id):
        return None
    return register_channel(channel_id, channel.get('name') or 'unknown')


def join_all_channels() -> ChannelSync:
    """Join every public channel and register the ones not configured yet.

    A failure listing channels stops the sync and returns the counts so far.
    """
    sync = ChannelSync()
    cursor = None
    try:
        while True:
            channels, cursor = get_slack().conversations_list(cursor=cursor)
            for channel in channels:
                channel_id = channel.get('id')
                if channel.get('is_member'):
                    sync.already_in += 1
                elif join_channel(channel_id):
                    sync.joined += 1
                else:
                    sync.skipped += 1
                    continue

                if get_channel_config(channel_id) is None:
                    register_channel(channel_id, channel.get('name') or 'unknown')
            if not cursor:
                break
    except SlackAPIError as e:
        logger.error(f"Channel sync stopped: {e.message}")

    logger.info(f"Channel sync complete: joined={sync.joined} already_in={sync.already_in} "
                f"skipped={sync.skipped}")
    return sync
