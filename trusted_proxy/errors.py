from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from starlette.requests import HTTPConnection
from starlette.responses import PlainTextResponse
from starlette.types import ASGIApp
from starlette.websockets import WebSocketClose

logger = logging.getLogger('trusted_proxy.errors')


class ErrorType(str, Enum):
    UNKNOWN_REMOTE_ADDR = 'unknown_remote_addr'
    IP_EXTRACTOR_ERROR = 'ip_extractor_error'


class TrustedProxyError(Exception):
    error_type: ErrorType = ErrorType.IP_EXTRACTOR_ERROR


class UnknownRemoteAddrError(TrustedProxyError):
    error_type = ErrorType.UNKNOWN_REMOTE_ADDR


class ProxyChainError(TrustedProxyError):
    error_type = ErrorType.IP_EXTRACTOR_ERROR


ErrorHandler = Callable[[ErrorType, TrustedProxyError, HTTPConnection], ASGIApp]


def default_error_handler(error_type: ErrorType, exc: TrustedProxyError, conn: HTTPConnection) -> ASGIApp:
    logger.error('Trusted proxy resolution failed (%s) for %s: %s', error_type.value, conn.url.path, exc)
    if conn.scope['type'] == 'websocket':
        return WebSocketClose(code=1011, reason=str(exc))
    return PlainTextResponse(str(exc), status_code=500)
