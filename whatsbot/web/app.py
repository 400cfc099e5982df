"""
Flask application for the whatsbot web API.
"""

import logging
from typing import Optional
from flask import Flask, jsonify

from whatsbot.config import Config
from whatsbot.session import SessionController
from whatsbot.version import __version__
from whatsbot.web.api import WhatsBotAPI

logger = logging.getLogger(__name__)


def create_app(controller: Optional[SessionController] = None,
               config: Optional[Config] = None) -> Flask:
    """
    Create a Flask application for the whatsbot web API.

    Args:
        controller: Session controller to serve. Built from config when omitted.
        config: Configuration used to build the controller.

    Returns:
        Flask application.
    """
    app = Flask(__name__)

    if controller is None:
        controller = SessionController.from_config(config or Config())
        controller.initialize()

    app.extensions['whatsbot'] = controller

    api = WhatsBotAPI(controller)
    api.register_with_app(app)

    @app.route('/health')
    def health():
        return jsonify({
            'status': 'ok',
            'version': __version__,
            'session': controller.snapshot()
        })

    return app
