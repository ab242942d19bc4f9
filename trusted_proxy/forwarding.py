from __future__ import annotations

import logging

import httpx
from starlette.requests import Request

from trusted_proxy.request import ForwardedRequest

logger = logging.getLogger('trusted_proxy.forwarding')

HOP_BY_HOP_HEADERS = frozenset(
    {
        'connection',
        'keep-alive',
        'proxy-authenticate',
        'proxy-authorization',
        'te',
        'trailer',
        'transfer-encoding',
        'upgrade',
    }
)


def forward_headers(forwarded: ForwardedRequest, *, strip_forwarded_ips: bool = False) -> list[tuple[str, str]]:
    outbound = forwarded.build_request_for_forward(strip_forwarded_ips)
    return [
        (key, value)
        for key, value in outbound.headers.items()
        if key not in HOP_BY_HOP_HEADERS and key not in ('content-length', 'host')
    ]


def response_headers(response: httpx.Response) -> dict[str, str]:
    # httpx has already decoded the body
    return {
        key: value
        for key, value in response.headers.items()
        if key not in HOP_BY_HOP_HEADERS and key not in ('content-length', 'content-encoding')
    }


def build_upstream_request(
    forwarded: ForwardedRequest,
    upstream_url: str,
    body: bytes = b'',
    *,
    path: str | None = None,
    strip_forwarded_ips: bool = False,
) -> httpx.Request:
    """Build the request to send to ``upstream_url`` on behalf of the trusted client.

    The body is taken as an argument because the handler usually owns the
    request stream; read it with ``await request.body()`` first. ``path``
    overrides the original request path, e.g. to drop a routing prefix.
    """
    original = forwarded.original_request
    if not isinstance(original, Request):
        raise TypeError('only HTTP requests can be forwarded upstream')

    base = httpx.URL(upstream_url)
    target = base.copy_with(path=base.path.rstrip('/') + (path if path is not None else original.url.path))
    if original.url.query:
        target = target.copy_with(query=original.url.query.encode('latin-1'))

    headers = forward_headers(forwarded, strip_forwarded_ips=strip_forwarded_ips)
    logger.debug(
        'Forwarding %s %s to %s for %s',
        original.method,
        original.url.path,
        target,
        forwarded.trusted_remote_addr,
    )
    return httpx.Request(original.method, target, headers=headers, content=body)
