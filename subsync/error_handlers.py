# subsync/error_handlers.py
import logging
import traceback

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from subsync.errors import WebhookError

logger = logging.getLogger(__name__)


def register_error_handlers(app):
    """Register all error handlers for the application"""

    @app.errorhandler(WebhookError)
    def handle_webhook_error(error):
        log = logger.error if error.status_code >= 500 else logger.warning
        log(
            f"{error.__class__.__name__}: {error.message}",
            extra={"path": request.path, "status_code": error.status_code, **error.context},
        )
        return jsonify({**error.to_dict(), "path": request.path}), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        if e.code >= 500:
            logger.error(f"HTTP error {e.code}: {e.name} - Path: {request.path}")
        else:
            logger.info(f"HTTP error {e.code}: {e.name} - Path: {request.path}")
        return jsonify({
            "error": e.name,
            "message": e.description,
            "path": request.path,
        }), e.code

    @app.errorhandler(Exception)
    def handle_exception(e):
        """
        Handles all unexpected server errors.
        Prevents stack trace leakage in the response.
        """
        logger.error(f"Unhandled exception: {e.__class__.__name__} - Path: {request.path}")
        logger.error(traceback.format_exc())
        return jsonify({
            "error": "Server error",
            "message": "An internal server error occurred. Please try again later.",
            "path": request.path,
        }), 500
