"""
REST API for whatsbot.

Translates HTTP JSON requests into session controller calls and maps the
returned ConnectionStatus onto HTTP status codes.
"""

import logging
from typing import Dict, Optional, Tuple
from flask import Flask, request, jsonify, Response, Blueprint

from whatsbot.session import SessionController
from whatsbot.status import ConnectionStatus, StatusResult
from whatsbot.constants import MSG_MALFORMED_SEND
from whatsbot.exceptions import WhatsBotException

logger = logging.getLogger(__name__)

INFO_CODES = {
    ConnectionStatus.LIBRARY_ERROR: 500,
}

SEND_CODES = {
    ConnectionStatus.MESSAGE_SENT: 201,
    ConnectionStatus.SIGNED_OUT: 400,
    ConnectionStatus.NOT_CONNECTED: 400,
    ConnectionStatus.TARGET_NOT_ON_WHATSAPP: 409,
    ConnectionStatus.LIBRARY_ERROR: 500,
}

PAIRING_CODES = {
    ConnectionStatus.QR_CODE_GENERATED: 202,
    ConnectionStatus.SIGNED_IN: 200,
    ConnectionStatus.LIBRARY_ERROR: 500,
}


def _respond(result: StatusResult, codes: Dict[ConnectionStatus, int]) -> Tuple[Response, int]:
    status_code = codes.get(result.status, 200)
    body = result.to_dict()
    # Errors are only reported where the status code says something went wrong
    if status_code < 400:
        body.pop("error_message", None)
    return jsonify(body), status_code


class WhatsBotAPI:
    """
    REST API wrapper around a session controller.
    """

    def __init__(self, controller: SessionController):
        """
        Initialize the API.

        Args:
            controller: The session controller requests are forwarded to.
        """
        self.controller = controller
        self.bp = Blueprint('whatsbot_api', __name__)
        self._setup_routes()

    def _setup_routes(self) -> None:
        """Set up the API routes."""
        self.bp.route('/info', methods=['GET'])(self._info)
        self.bp.route('/send_message', methods=['POST'])(self._send_message)
        self.bp.route('/start_connection', methods=['POST'])(self._start_connection)

    def register_with_app(self, app: Flask, url_prefix: Optional[str] = None) -> None:
        """
        Register the API with a Flask app.

        Args:
            app: Flask app to register with.
            url_prefix: Optional prefix for every route.
        """
        app.register_blueprint(self.bp, url_prefix=url_prefix)

        @app.errorhandler(WhatsBotException)
        def handle_whatsbot_exception(error):
            response = jsonify({
                'error': type(error).__name__,
                'error_message': str(error)
            })
            response.status_code = 400
            return response

        @app.errorhandler(404)
        def handle_not_found(error):
            response = jsonify({
                'error': 'NotFound',
                'error_message': 'The requested resource was not found.'
            })
            response.status_code = 404
            return response

        @app.errorhandler(405)
        def handle_method_not_allowed(error):
            response = jsonify({
                'error': 'MethodNotAllowed',
                'error_message': 'The method is not allowed for the requested URL.'
            })
            response.status_code = 405
            return response

        @app.errorhandler(500)
        def handle_server_error(error):
            response = jsonify({
                'error': 'ServerError',
                'error_message': 'An internal server error occurred.'
            })
            response.status_code = 500
            return response

    def _info(self) -> Tuple[Response, int]:
        """
        Get the sign-in status.

        Returns:
            JSON response with the current status.
        """
        result = self.controller.check_status()
        return _respond(result, INFO_CODES)

    def _send_message(self) -> Tuple[Response, int]:
        """
        Send a text message.

        Expected JSON body:
        {
            "phone_number": "+15551234567",
            "message": "Hello, world!"
        }

        Returns:
            JSON response with the send status.
        """
        data = request.get_json(silent=True)
        phone_number = data.get('phone_number') if isinstance(data, dict) else None
        message = data.get('message') if isinstance(data, dict) else None

        if not isinstance(phone_number, str) or not isinstance(message, str) \
                or not phone_number.strip() or not message:
            return jsonify({'error_message': MSG_MALFORMED_SEND}), 400

        result = self.controller.send_message(phone_number.strip(), message)
        if result.status is ConnectionStatus.MESSAGE_SENT:
            logger.info(f"Message sent to {phone_number}")
        return _respond(result, SEND_CODES)

    def _start_connection(self) -> Tuple[Response, int]:
        """
        Start QR pairing.

        Optional JSON body:
        {
            "force": false  # keep an existing signed-in session
        }

        Returns:
            JSON response with the pairing status and, when issued, the QR code.
        """
        data = request.get_json(silent=True) or {}
        force = data.get('force') if isinstance(data, dict) else None

        if force is not None and not isinstance(force, bool):
            return jsonify({'error_message': "'force' must be a boolean"}), 400

        result = self.controller.start_pairing(force=force)
        return _respond(result, PAIRING_CODES)
