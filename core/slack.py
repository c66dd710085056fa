"""Slack Web API transport.

Thin wrapper over the Slack Web API using requests. Every call raises
SlackAPIError when the HTTP request fails or Slack answers ok=false, so
callers decide whether a failure is fatal (worker retries) or best-effort.
"""

import logging
import requests
from dataclasses import dataclass
from typing import List, Dict, Any, Optional, Tuple

from . import config
from .errors import SlackAPIError

logger = logging.getLogger(__name__)

SLACK_API_URL = 'https://slack.com/api'


class SlackClient:
    """Centralized Slack Web API client."""

    def __init__(self, token: Optional[str] = None, timeout: int = 10):
        """Initialize with the bot token from config or parameter."""
        self.token = token or config.SLACK_BOT_TOKEN
        self.timeout = timeout
        if not self.token:
            logger.warning("SLACK_BOT_TOKEN not set. Slack calls will fail.")

    def _call(self, method: str, payload: Dict[str, Any], http_method: str = 'POST') -> Dict[str, Any]:
        """Call a Web API method and return the decoded body.

        Args:
            method: API method name, e.g. 'chat.postMessage'
            payload: JSON body for writes, query params for reads
            http_method: 'POST' or 'GET'

        Returns:
            Response body (ok is always true)
        """
        if not self.token:
            raise SlackAPIError(method, 'not_configured')

        url = f"{SLACK_API_URL}/{method}"
        headers = {'Authorization': f"Bearer {self.token}"}
        try:
            if http_method == 'GET':
                response = requests.get(url, params=payload, headers=headers, timeout=self.timeout)
            else:
                response = requests.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise SlackAPIError(method, str(e))

        if response.status_code != 200:
            raise SlackAPIError(method, f"http_{response.status_code}")

        body = response.json()
        if not body.get('ok'):
            raise SlackAPIError(method, body.get('error', 'unknown_error'))
        return body

    def post_message(self, channel: str, text: str, blocks: Optional[List[Dict[str, Any]]] = None,
                     thread_ts: Optional[str] = None) -> str:
        """Post a message and return its ts.

        Args:
            channel: Channel id, or a user id to DM them
            text: Fallback/notification text
            blocks: Optional Block Kit blocks
            thread_ts: Reply inside this thread

        Returns:
            Message timestamp of the posted message
        """
        payload = {'channel': channel, 'text': text}
        if blocks:
            payload['blocks'] = blocks
        if thread_ts:
            payload['thread_ts'] = thread_ts
        body = self._call('chat.postMessage', payload)
        logger.info(f"Posted Slack message to {channel}")
        return body.get('ts')

    def update_message(self, channel: str, ts: str, text: str,
                       blocks: Optional[List[Dict[str, Any]]] = None) -> None:
        payload = {'channel': channel, 'ts': ts, 'text': text}
        if blocks is not None:
            payload['blocks'] = blocks
        self._call('chat.update', payload)

    def schedule_message(self, channel: str, text: str, post_at: int) -> str:
        """Schedule a message with Slack's native deferred send.

        Args:
            channel: Channel id
            text: Message text
            post_at: Unix timestamp (seconds)

        Returns:
            Slack's scheduled_message_id
        """
        body = self._call('chat.scheduleMessage', {'channel': channel, 'text': text, 'post_at': post_at})
        return body.get('scheduled_message_id')

    def conversations_history(self, channel: str, limit: int = 10,
                              oldest: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {'channel': channel, 'limit': limit}
        if oldest:
            params['oldest'] = oldest
        body = self._call('conversations.history', params, http_method='GET')
        return body.get('messages', [])

    def open_view(self, trigger_id: str, view: Dict[str, Any]) -> None:
        self._call('views.open', {'trigger_id': trigger_id, 'view': view})

    def auth_test(self) -> Dict[str, Any]:
        return self._call('auth.test', {})

    def conversations_info(self, channel: str) -> Dict[str, Any]:
        body = self._call('conversations.info', {'channel': channel}, http_method='GET')
        return body.get('channel', {})

    def conversations_join(self, channel: str) -> None:
        self._call('conversations.join', {'channel': channel})

    def conversations_list(self, cursor: Optional[str] = None,
                           limit: int = 200) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """List public, non-archived channels.

        Returns:
            (channels, next_cursor) where next_cursor is None on the last page
        """
        params = {'types': 'public_channel', 'exclude_archived': 'true', 'limit': limit}
        if cursor:
            params['cursor'] = cursor
        body = self._call('conversations.list', params, http_method='GET')
        next_cursor = (body.get('response_metadata') or {}).get('next_cursor') or None
        return body.get('channels', []), next_cursor


@dataclass
class NotificationOutcome:
    """Result of a best-effort side notification.

    A failed notification never fails the primary operation that sent it.
    """
    delivered: bool
    error: Optional[str] = None
    ts: Optional[str] = None


def notify(channel: str, text: str, blocks: Optional[List[Dict[str, Any]]] = None) -> NotificationOutcome:
    """Post a message, converting any failure into a logged outcome."""
    try:
        ts = get_slack().post_message(channel, text, blocks=blocks)
    except Exception as e:
        logger.exception(f"Best-effort notification to {channel} failed: {e}")
        return NotificationOutcome(delivered=False, error=str(e))
    return NotificationOutcome(delivered=True, ts=ts)


def notify_update(channel: str, ts: str, text: str,
                  blocks: Optional[List[Dict[str, Any]]] = None) -> NotificationOutcome:
    """Update a message in place, converting any failure into a logged outcome."""
    try:
        get_slack().update_message(channel, ts, text, blocks=blocks)
    except Exception as e:
        logger.exception(f"Best-effort update of {channel}/{ts} failed: {e}")
        return NotificationOutcome(delivered=False, error=str(e))
    return NotificationOutcome(delivered=True, ts=ts)


# Global singleton instance
_default_client: Optional[SlackClient] = None


def get_slack() -> SlackClient:
    """Get or create the default SlackClient instance."""
    global _default_client
    if _default_client is None:
        _default_client = SlackClient()
    return _default_client


def set_slack(client: Optional[SlackClient]) -> None:
    """Replace the default client (tests install a recording fake here)."""
    global _default_client
    _default_client = client
