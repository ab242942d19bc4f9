from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from ipaddress import IPv4Network, IPv6Network, ip_network
from typing import Protocol, Union

from trusted_proxy.errors import ProxyChainError
from trusted_proxy.extractor import Address

Network = Union[IPv4Network, IPv6Network]

logger = logging.getLogger('trusted_proxy.resolvers')


@dataclass(frozen=True)
class TrustPartition:
    proxy: Address | None
    remote: Address
    forwarded: tuple[Address, ...] = ()

    @property
    def is_behind_proxy(self) -> bool:
        return self.proxy is not None


class TrustResolver(Protocol):
    def resolve(self, remote: Address, forwarded: Sequence[Address]) -> TrustPartition: ...


def build_trusted_proxy_networks(cidrs: Iterable[str]) -> list[Network]:
    networks: list[Network] = []
    for cidr in cidrs:
        value = cidr.strip()
        if not value:
            continue
        try:
            networks.append(ip_network(value, strict=False))
        except ValueError:
            logger.warning('Ignoring invalid trusted proxy CIDR %r', value)
            continue
    return networks


class CIDRWhitelist:
    """Trust the run of whitelisted hops that starts at the socket peer.

    The chain is walked from the right: each whitelisted candidate becomes the
    proxy and the next entry to its left becomes the new candidate. The first
    candidate outside the whitelist, or the leftmost entry, is the remote.
    """

    def __init__(self, networks: Iterable[Network]) -> None:
        self.networks: tuple[Network, ...] = tuple(networks)

    @classmethod
    def from_cidrs(cls, cidrs: Iterable[str]) -> CIDRWhitelist:
        return cls(build_trusted_proxy_networks(cidrs))

    def contains(self, ip: Address) -> bool:
        # dual-stack sockets report IPv4 peers as ::ffff:a.b.c.d
        mapped = getattr(ip, 'ipv4_mapped', None)
        return any(ip in network or (mapped is not None and mapped in network) for network in self.networks)

    def resolve(self, remote: Address, forwarded: Sequence[Address]) -> TrustPartition:
        chain = list(forwarded)
        proxy: Address | None = None
        while chain and self.contains(remote):
            proxy = remote
            remote = chain.pop()
        return TrustPartition(proxy=proxy, remote=remote, forwarded=tuple(chain))

    def __repr__(self) -> str:
        return f'CIDRWhitelist({[str(network) for network in self.networks]!r})'


class FixedOffset:
    """Trust a fixed position counted from the right of ``forwarded + [remote]``.

    Offset 0 makes the socket peer the proxy and the last forwarded entry the
    remote; each extra unit skips one more known hop.
    """

    def __init__(self, offset: int) -> None:
        if offset < 0:
            raise ValueError('offset must be non-negative')
        self.offset = offset

    def resolve(self, remote: Address, forwarded: Sequence[Address]) -> TrustPartition:
        chain = [*forwarded, remote]
        size = len(chain)
        if size < self.offset + 2:
            raise ProxyChainError(
                f'mis-configured proxy chain: {size} address(es) for offset {self.offset}'
            )
        index = size - self.offset - 2
        return TrustPartition(proxy=chain[index + 1], remote=chain[index], forwarded=tuple(chain[:index]))

    def __repr__(self) -> str:
        return f'FixedOffset({self.offset})'


def resolve(remote: Address, forwarded: Sequence[Address], policy: TrustResolver) -> TrustPartition:
    return policy.resolve(remote, forwarded)
