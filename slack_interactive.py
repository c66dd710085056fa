import hmac
import json
import time
import hashlib
import logging
from flask import Flask, request, jsonify

from core import config
from core import approvals
from core.blocks import APPROVE_ACTION, EDIT_ACTION, REJECT_ACTION, EDIT_CALLBACK, EDIT_BLOCK, EDIT_INPUT, \
    build_edit_modal
from core.errors import ApprovalError, SlackAPIError, handle_error
from core.storage import get_approval_by_id
from core.slack import get_slack
from core.channels import handle_member_joined, handle_channel_created

logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
app = Flask(__name__)

SIGNATURE_MAX_AGE = 60 * 5

CHANNEL_EVENTS = {
    'member_joined_channel': handle_member_joined,
    'channel_created': handle_channel_created,
}


def verify_slack_signature(secret: str, timestamp: str, body: bytes, signature: str, now: float = None) -> bool:
    """Check Slack's v0 request signature over 'v0:<timestamp>:<body>'."""
    if not (timestamp and signature):
        return False
    try:
        if abs((now or time.time()) - int(timestamp)) > SIGNATURE_MAX_AGE:
            return False
    except ValueError:
        return False
    base = f"v0:{timestamp}:".encode() + body
    expected = 'v0=' + hmac.new(secret.encode(), base, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


@app.before_request
def check_signature():
    if request.path == '/health' or not config.SLACK_SIGNING_SECRET:
        return None
    if not verify_slack_signature(config.SLACK_SIGNING_SECRET,
                                  request.headers.get('X-Slack-Request-Timestamp', ''),
                                  request.get_data(),
                                  request.headers.get('X-Slack-Signature', '')):
        logging.warning(f"Rejected request to {request.path}: bad Slack signature")
        return jsonify({"error": "invalid signature"}), 401
    return None


# --- Health check endpoint ---
@app.route('/health', methods=['GET'])
def health_check():
    """Read-only health check route for deployment verification."""
    logging.debug("Health check endpoint called.")
    return jsonify({"status": "ok", "message": "Service is healthy."}), 200


def operator_message_payload(event):
    """Queue payload for an operator message event, or None if it should be ignored."""
    if event.get('type') != 'message' or event.get('subtype') or event.get('bot_id'):
        return None
    if not event.get('text') or not event.get('user'):
        return None
    if config.FOUNDER_SLACK_ID and event['user'] != config.FOUNDER_SLACK_ID:
        logging.info(f"Ignoring message from non-operator user {event['user']}")
        return None
    return {
        'text': event['text'],
        'channel': event.get('channel'),
        'user': event['user'],
        'ts': event.get('ts'),
        'thread_ts': event.get('thread_ts'),
        'channel_type': event.get('channel_type', 'im'),
    }


# --- Slack Events API: operator messages ---
@app.route('/slack/events', methods=['POST'])
def slack_events():
    data = request.get_json(force=True, silent=True) or {}
    if data.get('type') == 'url_verification':
        return jsonify({"challenge": data.get('challenge')}), 200

    # Slack re-sends events it thinks timed out; the first delivery is already queued.
    if request.headers.get('X-Slack-Retry-Num'):
        return jsonify({"ok": True}), 200

    event = data.get('event') or {}
    if event.get('type') in CHANNEL_EVENTS:
        try:
            CHANNEL_EVENTS[event['type']](event)
        except SlackAPIError as e:
            logging.error(f"Error handling {event['type']}: {e.message}")
        return jsonify({"ok": True}), 200

    payload = operator_message_payload(event)
    if payload:
        from celery_app import process_operator_message
        process_operator_message.delay(payload)
        logging.info(f"Queued operator message {payload['ts']} from {payload['channel']}")
    return jsonify({"ok": True}), 200


def _ephemeral(text, status=200):
    return jsonify({"response_type": "ephemeral", "text": text}), status


def handle_block_action(data):
    actions = data.get('actions', [])
    if not actions:
        return _ephemeral("No action taken.")
    action = actions[0]
    action_id = action.get('action_id')
    approval_id = int(action.get('value'))
    user_id = data.get('user', {}).get('id')
    channel_id = data.get('channel', {}).get('id')
    logging.info(f"Approval action {action_id} on {approval_id} by {user_id}")

    if action_id == APPROVE_ACTION:
        approvals.approve(approval_id, actor=user_id, channel_id=channel_id)
        return _ephemeral("Approved and sent.")

    if action_id == REJECT_ACTION:
        approvals.reject(approval_id, actor=user_id, channel_id=channel_id)
        return _ephemeral("Rejected. Nothing was sent.")

    if action_id == EDIT_ACTION:
        approval = get_approval_by_id(approval_id)
        if approval is None or approval.status != 'pending':
            return _ephemeral("This approval was already handled.")
        draft = (approval.payload or {}).get('draft_message', '')
        get_slack().open_view(data.get('trigger_id'), build_edit_modal(approval_id, approval.target_channel, draft))
        return '', 200

    return _ephemeral("No action taken.")


def handle_view_submission(data):
    view = data.get('view', {})
    if view.get('callback_id') != EDIT_CALLBACK:
        return '', 200
    approval_id = int(view.get('private_metadata'))
    values = view.get('state', {}).get('values', {})
    edited = values.get(EDIT_BLOCK, {}).get(EDIT_INPUT, {}).get('value') or ''
    if not edited.strip():
        return jsonify({"response_action": "errors", "errors": {EDIT_BLOCK: "Message cannot be empty."}}), 200
    approvals.edit_then_approve(approval_id, edited, actor=data.get('user', {}).get('id'))
    return '', 200


# --- Flask endpoint for Slack interactive events ---
@app.route('/slack/interactivity', methods=['POST'])
def slack_interactivity():
    payload = request.form.get('payload')
    if not payload:
        logging.error('No payload received from Slack.')
        return _ephemeral("No payload received.", 400)
    try:
        data = json.loads(payload)
    except ValueError as e:
        logging.exception("Failed to parse payload JSON:")
        return _ephemeral(f"Invalid payload: {e}", 400)

    user_id = data.get('user', {}).get('id')
    if config.FOUNDER_SLACK_ID and user_id != config.FOUNDER_SLACK_ID:
        logging.warning(f"Ignoring approval interaction from non-operator user {user_id}")
        return _ephemeral("Only the founder can approve messages.")

    try:
        if data.get('type') == 'block_actions':
            return handle_block_action(data)
        if data.get('type') == 'view_submission':
            return handle_view_submission(data)
    except ApprovalError as e:
        logging.warning(f"Approval interaction refused: {e.message}")
        return _ephemeral(e.message)
    except SlackAPIError as e:
        logging.error(f"Approval delivery failed: {e.message}")
        return _ephemeral("The message was approved but could not be delivered. Check the audit log.")
    except Exception as e:
        return _ephemeral(handle_error(e, 'slack-interactivity'))

    return _ephemeral("No action taken.")


if __name__ == "__main__":
    app.run(host='0.0.0.0', port=config.SLACK_APP_PORT)
