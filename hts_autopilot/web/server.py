"""
Autopilot Control Page
======================

Flask app that provides:
- The operator control page (heading hold / track hold buttons)
- GET /state: autopilot state, last sentence and fused navigation status
- POST /cmd: operator command {"c": <command>, "v": <value>}

It is a thin client of the autopilot's command/query interface; every
decision is made by the mode manager.
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from flask import Flask, jsonify, request, send_from_directory

if TYPE_CHECKING:
    from ..main import HTSAutopilot

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent / "static"


def create_app(autopilot: "HTSAutopilot") -> Flask:
    """
    Build the control page app for a running autopilot.

    Args:
        autopilot: Autopilot providing handle_command() and state_dict()
    """
    app = Flask(__name__, static_folder=str(STATIC_DIR))

    @app.route('/')
    def index():
        """Serve the control page."""
        return send_from_directory(app.static_folder, 'index.html')

    @app.route('/state')
    def get_state():
        """Current state and navigation status."""
        return jsonify(autopilot.state_dict())

    @app.route('/cmd', methods=['POST'])
    def command():
        """
        Apply an operator command.

        Unknown commands and commands whose preconditions fail leave the
        state unchanged; the response is always the current state.
        """
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "Expected JSON object with 'c'"}), 400

        cmd = data.get('c')
        logger.debug(f"Command {cmd!r} value={data.get('v')!r}")
        autopilot.handle_command(cmd, data.get('v'))
        return jsonify(autopilot.state_dict())

    @app.route('/stats')
    def stats():
        """Runtime statistics."""
        return jsonify(autopilot.status)

    return app
