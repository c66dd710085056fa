from flask import Flask, request, jsonify
from dataclasses import asdict
import logging

from core import config
from agents.handler import build_context
from agents.orchestrator import get_orchestrator
from agents.schemas import TOOL_INPUTS, DESCRIPTIONS

logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)

app = Flask(__name__)


@app.route('/agent', methods=['POST'])
def agent_endpoint():
    data = request.get_json(force=True) or {}
    instr = data.get('instruction') or data.get('prompt') or ''
    if not instr:
        return jsonify({'error': 'no instruction provided'}), 400
    context = build_context(
        channel_id=data.get('channel_id') or config.FOUNDER_SLACK_ID or 'local',
        user_id=data.get('user_id') or config.FOUNDER_SLACK_ID or 'local',
        channel_type=data.get('channel_type', 'im'),
        thread_ts=data.get('thread_ts'),
        thread_history=data.get('history'),
    )
    response = get_orchestrator().handle(instr, context)
    return jsonify(asdict(response))


@app.route('/agent/tools', methods=['GET'])
def list_tools():
    return jsonify({'tools': [{'name': str(name), 'description': DESCRIPTIONS[name]}
                              for name in sorted(TOOL_INPUTS, key=str)]})


if __name__ == '__main__':
    port = int(config.AGENT_PORT)
    app.run(host='0.0.0.0', port=port)
