from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from trusted_proxy.request import ForwardedRequest


class StrictSchema(BaseModel):
    model_config = ConfigDict(extra='forbid')


class ForwardedRequestRead(StrictSchema):
    behind_proxy: bool
    proxy_ip: str | None
    trusted_remote_addr: str
    trusted_forwarded_for: list[str]
    trusted_host: str
    trusted_proto: str
    trusted_url: str
    forward_for: str

    @classmethod
    def from_forwarded(cls, forwarded: ForwardedRequest, *, strip_forwarded_ips: bool = False) -> ForwardedRequestRead:
        return cls(
            behind_proxy=forwarded.is_behind_proxy,
            proxy_ip=str(forwarded.proxy_ip) if forwarded.proxy_ip else None,
            trusted_remote_addr=str(forwarded.trusted_remote_addr),
            trusted_forwarded_for=[str(ip) for ip in forwarded.trusted_forwarded_for],
            trusted_host=forwarded.trusted_host,
            trusted_proto=forwarded.trusted_proto,
            trusted_url=str(forwarded.trusted_url),
            forward_for=forwarded.forward_for_value(strip_forwarded_ips),
        )
