import json
from functools import lru_cache
from typing import Annotated, List, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from trusted_proxy.resolvers import CIDRWhitelist, FixedOffset, TrustResolver


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    app_name: str = 'Trusted Proxy API'
    debug: bool = False

    trusted_proxy_policy: Literal['cidr', 'offset'] = 'cidr'
    trusted_proxy_cidrs: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ['127.0.0.0/8', '::1/128', '10.0.0.0/8', '172.16.0.0/12', '192.168.0.0/16']
    )
    trusted_proxy_offset: int = Field(default=0, ge=0, le=64)
    trusted_proxy_rewrite_request: bool = True

    forward_strip_ips: bool = False
    forward_upstream_url: str | None = None
    forward_timeout_seconds: float = Field(default=10.0, gt=0, le=300)

    @field_validator('trusted_proxy_cidrs', mode='before')
    @classmethod
    def split_cidrs(cls, value: str | List[str]) -> List[str]:
        if isinstance(value, str):
            stripped = value.strip()
            if stripped.startswith('['):
                parsed = json.loads(stripped)
                if isinstance(parsed, list):
                    return [str(item).strip() for item in parsed if str(item).strip()]
            return [item.strip() for item in value.split(',') if item.strip()]
        return value


def build_resolver(settings: Settings) -> TrustResolver:
    if settings.trusted_proxy_policy == 'offset':
        return FixedOffset(settings.trusted_proxy_offset)
    return CIDRWhitelist.from_cidrs(settings.trusted_proxy_cidrs)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


@lru_cache(maxsize=1)
def get_resolver() -> TrustResolver:
    return build_resolver(get_settings())
