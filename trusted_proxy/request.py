from __future__ import annotations

from functools import cached_property
from typing import Any

from starlette.datastructures import URL, Headers, MutableHeaders
from starlette.requests import HTTPConnection, Request, empty_receive
from starlette.types import Receive

from trusted_proxy.extractor import (
    X_FORWARDED_FOR,
    X_FORWARDED_HOST,
    X_FORWARDED_PROTO,
    X_REAL_IP,
    Address,
    extract_forwarded_for,
    parse_remote_address,
)
from trusted_proxy.resolvers import TrustPartition, TrustResolver

_PROTO_ALIASES = {'http': 'http', 'ws': 'http', 'https': 'https', 'wss': 'https'}
_WEBSOCKET_SCHEMES = {'http': 'ws', 'https': 'wss'}


def _snapshot_scope(scope: dict[str, Any]) -> dict[str, Any]:
    # request-scoped state stays shared so later stages see attached values
    snapshot = dict(scope)
    snapshot['headers'] = list(scope.get('headers', []))
    return snapshot


class ForwardedRequest:
    """The request as the origin believes it, after trust resolution.

    The view copies the original scope when it is built, so later mutation of
    the raw request cannot leak into derived values. Each derived value is
    computed on first access and then cached. The caches are not locked:
    concurrent first reads of one view compute the same value, which is safe
    under benign races but not synchronized.
    """

    def __init__(self, request: HTTPConnection, partition: TrustPartition) -> None:
        self._request = request
        self._receive: Receive = request.receive if isinstance(request, Request) else empty_receive
        self._scope = _snapshot_scope(request.scope)
        self._headers = Headers(raw=self._scope['headers'])
        self.partition = partition

    @classmethod
    def from_request(cls, request: HTTPConnection, resolver: TrustResolver) -> ForwardedRequest:
        """Resolve ``request`` with ``resolver``.

        Raises ``UnknownRemoteAddrError`` when the socket peer is not an IP
        address and ``ProxyChainError`` when the resolver rejects the chain.
        """
        forwarded = extract_forwarded_for(request.headers)
        client = request.client
        remote = parse_remote_address(client.host if client else None)
        return cls(request, resolver.resolve(remote, forwarded))

    @property
    def original_request(self) -> HTTPConnection:
        return self._request

    @property
    def is_behind_proxy(self) -> bool:
        return self.partition.proxy is not None

    @property
    def proxy_ip(self) -> Address | None:
        return self.partition.proxy

    @property
    def trusted_remote_addr(self) -> Address:
        return self.partition.remote

    @property
    def trusted_forwarded_for(self) -> tuple[Address, ...]:
        return self.partition.forwarded

    @property
    def _is_tls(self) -> bool:
        return self._scope.get('scheme') in ('https', 'wss')

    @cached_property
    def _original_url(self) -> URL:
        return URL(scope=self._scope)

    @cached_property
    def trusted_host(self) -> str:
        if self.is_behind_proxy:
            forwarded_host = self._headers.get(X_FORWARDED_HOST)
            if forwarded_host:
                return forwarded_host
        return self._original_url.netloc

    @cached_property
    def trusted_proto(self) -> str:
        if self.is_behind_proxy:
            # proxies sometimes send ws/wss here; map them to the underlying HTTP scheme
            proto = _PROTO_ALIASES.get((self._headers.get(X_FORWARDED_PROTO) or '').strip().lower())
            if proto:
                return proto
        return 'https' if self._is_tls else 'http'

    @cached_property
    def trusted_url(self) -> URL:
        return self._original_url.replace(scheme=self.trusted_proto, netloc=self.trusted_host)

    def _clone(self) -> tuple[dict[str, Any], MutableHeaders]:
        scope = _snapshot_scope(self._scope)
        if scope['type'] == 'websocket':
            scope['scheme'] = _WEBSOCKET_SCHEMES[self.trusted_proto]
        else:
            scope['scheme'] = self.trusted_proto
        headers = MutableHeaders(scope=scope)
        headers['host'] = self.trusted_host
        return scope, headers

    def _connection(self, scope: dict[str, Any]) -> HTTPConnection:
        if scope['type'] == 'http':
            return Request(scope, receive=self._receive)
        return HTTPConnection(scope)

    @cached_property
    def trusted_request(self) -> HTTPConnection:
        """A copy of the request carrying the trusted host, scheme and client.

        Only the first residual hop is kept in X-Forwarded-For; with no
        residual hops the forwarding headers are removed altogether.
        """
        scope, headers = self._clone()
        client = self._scope.get('client')
        port = client[1] if client else 0
        scope['client'] = (str(self.trusted_remote_addr), port)

        if self.partition.forwarded:
            headers[X_FORWARDED_FOR] = str(self.partition.forwarded[0])
        else:
            del headers[X_FORWARDED_FOR]
            del headers[X_FORWARDED_HOST]
            del headers[X_FORWARDED_PROTO]
        return self._connection(scope)

    def forward_for_value(self, strip_forwarded_ips: bool = False) -> str:
        ips = [] if strip_forwarded_ips else [str(ip) for ip in self.partition.forwarded]
        ips.append(str(self.trusted_remote_addr))
        return ', '.join(ips)

    def build_request_for_forward(self, strip_forwarded_ips: bool = False) -> HTTPConnection:
        """Return a fresh copy with X-Forwarded-* rewritten for the next server.

        With ``strip_forwarded_ips`` only the trusted remote address is kept
        in X-Forwarded-For; otherwise the residual hops precede it.
        """
        scope, headers = self._clone()
        for name in (X_FORWARDED_FOR, X_FORWARDED_HOST, X_FORWARDED_PROTO, X_REAL_IP):
            del headers[name]
        headers[X_FORWARDED_FOR] = self.forward_for_value(strip_forwarded_ips)
        headers[X_FORWARDED_HOST] = self.trusted_host
        headers[X_FORWARDED_PROTO] = self.trusted_proto
        return self._connection(scope)

    def __repr__(self) -> str:
        return f'ForwardedRequest(proxy={self.proxy_ip}, remote={self.trusted_remote_addr})'
