from __future__ import annotations

import logging

from fastapi import HTTPException, status
from starlette.requests import HTTPConnection, Request
from starlette.types import ASGIApp, Receive, Scope, Send

from trusted_proxy.config import get_resolver
from trusted_proxy.errors import ErrorHandler, TrustedProxyError, default_error_handler
from trusted_proxy.request import ForwardedRequest
from trusted_proxy.resolvers import TrustResolver

logger = logging.getLogger('trusted_proxy.middleware')

STATE_KEY = 'forwarded_request'


class TrustedProxyMiddleware:
    """Resolve the trusted client once per request and attach the view.

    The view is stored in the request state as ``forwarded_request``. With
    ``rewrite_request`` the application receives the trusted request's scope
    (trusted client, host and scheme); otherwise it receives the original scope.
    """

    def __init__(
        self,
        app: ASGIApp,
        resolver: TrustResolver,
        error_handler: ErrorHandler | None = None,
        rewrite_request: bool = True,
    ) -> None:
        self.app = app
        self.resolver = resolver
        self.error_handler = error_handler or default_error_handler
        self.rewrite_request = rewrite_request

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope['type'] not in ('http', 'websocket'):
            await self.app(scope, receive, send)
            return

        scope.setdefault('state', {})
        if scope['type'] == 'http':
            conn: HTTPConnection = Request(scope, receive=receive)
        else:
            conn = HTTPConnection(scope)

        try:
            forwarded = ForwardedRequest.from_request(conn, self.resolver)
        except TrustedProxyError as exc:
            response = self.error_handler(exc.error_type, exc, conn)
            await response(scope, receive, send)
            return

        scope['state'][STATE_KEY] = forwarded
        logger.debug(
            'Resolved %s: remote=%s proxy=%s residual=%s',
            conn.url.path,
            forwarded.trusted_remote_addr,
            forwarded.proxy_ip,
            [str(ip) for ip in forwarded.trusted_forwarded_for],
        )

        if self.rewrite_request:
            scope = forwarded.trusted_request.scope
        await self.app(scope, receive, send)


def get_forwarded_request(request: Request) -> ForwardedRequest:
    """FastAPI dependency returning the trusted view of ``request``.

    Falls back to resolving with the configured resolver when the middleware
    is not installed.
    """
    forwarded = getattr(request.state, STATE_KEY, None)
    if forwarded is None:
        try:
            forwarded = ForwardedRequest.from_request(request, get_resolver())
        except TrustedProxyError as exc:
            logger.error('Trusted proxy resolution failed (%s): %s', exc.error_type.value, exc)
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
        setattr(request.state, STATE_KEY, forwarded)
    return forwarded
