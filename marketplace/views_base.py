"""
Shared plumbing for the marketplace views: response envelopes and the
exception-to-envelope mapping.
"""
from typing import Any, Dict, Optional, Type

from loguru import logger
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import APIView

from marketplace.exceptions import MarketplaceError, MarketplaceValidationError
from marketplace.store import MarketplaceStore


def success_response(data: Any = None, status_code: int = status.HTTP_200_OK, **extra: Any) -> Response:
    body = {'success': True, 'data': data}
    body.update(extra)
    return Response(body, status=status_code)


def failure_response(message: str, status_code: int, **extra: Any) -> Response:
    body = {'success': False, 'error': message}
    body.update(extra)
    return Response(body, status=status_code)


def parse_body(schema: Type[BaseModel], data: Any) -> BaseModel:
    """Validate a request body, naming missing fields the way clients expect."""
    if not isinstance(data, dict):
        raise MarketplaceValidationError('Request body must be a JSON object')
    try:
        return schema.model_validate(data)
    except PydanticValidationError as exc:
        logger.debug('request body validation failed: {}', exc)
        missing = [
            str(error['loc'][0]) for error in exc.errors()
            if error['type'] == 'missing' and error['loc']
        ]
        if missing:
            raise MarketplaceValidationError(
                f"Missing required fields: {', '.join(missing)}") from exc
        fields = sorted({str(error['loc'][0]) for error in exc.errors() if error['loc']})
        raise MarketplaceValidationError(
            f"Invalid value for: {', '.join(fields)}" if fields else 'Invalid request body') from exc


class MarketplaceAPIView(APIView):
    """
    Base view for marketplace endpoints.

    ``store`` is injected through ``as_view(store=...)``; ``failure_message``
    (or the per-method ``failure_messages`` entry) is the only text an
    unexpected error exposes.
    """

    authentication_classes: list = []
    permission_classes: list = []

    store: Optional[MarketplaceStore] = None
    failure_message = 'Request failed'
    failure_messages: Dict[str, str] = {}

    def get_failure_message(self) -> str:
        method = getattr(self.request, 'method', '') or ''
        return self.failure_messages.get(method.lower(), self.failure_message)

    def handle_exception(self, exc):
        if isinstance(exc, MarketplaceError):
            if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
                logger.error('{} {}: {}', self.request.method, self.request.path, exc.message)
                return failure_response(self.get_failure_message(), exc.status_code)
            logger.info('{} {} rejected ({}): {}', self.request.method,
                        self.request.path, exc.status_code, exc.message)
            return failure_response(exc.message, exc.status_code, **exc.extra)

        if isinstance(exc, APIException):
            logger.info('{} {} rejected by framework: {}', self.request.method, self.request.path, exc)
            return failure_response(str(exc.detail), exc.status_code)

        logger.exception('{} {} failed: {}', self.request.method, self.request.path, exc)
        return failure_response(self.get_failure_message(), status.HTTP_500_INTERNAL_SERVER_ERROR)
