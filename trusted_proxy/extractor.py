from __future__ import annotations

from ipaddress import IPv4Address, IPv6Address, ip_address
from typing import Union

from starlette.datastructures import Headers

from trusted_proxy.errors import UnknownRemoteAddrError

Address = Union[IPv4Address, IPv6Address]

X_FORWARDED_FOR = 'x-forwarded-for'
X_FORWARDED_HOST = 'x-forwarded-host'
X_FORWARDED_PROTO = 'x-forwarded-proto'
X_REAL_IP = 'x-real-ip'


def _parse_ip(value: str | None) -> Address | None:
    if not value:
        return None
    candidate = value.strip()
    if not candidate:
        return None
    try:
        return ip_address(candidate)
    except ValueError:
        return None


def extract_forwarded_for(headers: Headers) -> list[Address]:
    """Return the X-Forwarded-For chain, left to right across every header occurrence.

    Tokens that are not valid addresses are dropped without leaving a gap.
    """
    result: list[Address] = []
    for header in headers.getlist(X_FORWARDED_FOR):
        for token in header.split(','):
            parsed = _parse_ip(token)
            if parsed is not None:
                result.append(parsed)
    return result


def parse_remote_address(value: str | None) -> Address:
    """Parse the socket peer as a bare address, ``host:port`` or ``[v6]:port``."""
    if not value or not value.strip():
        raise UnknownRemoteAddrError('missing remote address')
    candidate = value.strip()
    parsed = _parse_ip(candidate)
    if parsed is not None:
        return parsed

    if candidate.startswith('['):
        host, sep, port = candidate[1:].partition(']:')
    else:
        host, sep, port = candidate.rpartition(':')
        if ':' in host:
            # unbracketed IPv6 with a port suffix is ambiguous
            sep = ''
    if not sep or not port.isdigit():
        raise UnknownRemoteAddrError(f'invalid remote address {value!r}')
    parsed = _parse_ip(host)
    if parsed is None:
        raise UnknownRemoteAddrError(f'invalid remote address {value!r}')
    return parsed
