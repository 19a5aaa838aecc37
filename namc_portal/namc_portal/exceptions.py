import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


def _first_message(data):
    if isinstance(data, dict):
        if 'detail' in data:
            return _first_message(data['detail'])
        for key, value in data.items():
            message = _first_message(value)
            if key == 'non_field_errors':
                return message
            return f"{key}: {message}"
    if isinstance(data, (list, tuple)) and data:
        return _first_message(data[0])
    return str(data)


def api_exception_handler(exc, context):
    """
    Render every API error as ``{"error": "<message>"}``.

    Field validation errors keep their per-field breakdown under ``details``.
    Anything DRF does not know how to handle is logged and answered with a 500.
    """
    response = exception_handler(exc, context)

    if response is None:
        view = context.get('view')
        logger.error(
            "Unhandled error in %s: %s",
            view.__class__.__name__ if view else 'unknown view',
            exc,
            exc_info=exc,
        )
        return Response({'error': 'Internal server error'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    data = response.data
    payload = {'error': _first_message(data)}
    if isinstance(data, dict) and 'detail' not in data:
        payload['details'] = data
    elif isinstance(data, list):
        payload['details'] = data
    response.data = payload
    return response
