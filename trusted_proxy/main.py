import logging

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request, Response, status

from trusted_proxy.config import get_resolver, get_settings
from trusted_proxy.forwarding import build_upstream_request, response_headers
from trusted_proxy.middleware import TrustedProxyMiddleware, get_forwarded_request
from trusted_proxy.request import ForwardedRequest
from trusted_proxy.schemas import ForwardedRequestRead

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format='%(asctime)s %(levelname)s %(name)s %(message)s',
)
logger = logging.getLogger('trusted_proxy')

app = FastAPI(title=settings.app_name, version='1.0.0')

app.add_middleware(
    TrustedProxyMiddleware,
    resolver=get_resolver(),
    rewrite_request=settings.trusted_proxy_rewrite_request,
)

upstream_client = httpx.AsyncClient(timeout=settings.forward_timeout_seconds)


@app.on_event('startup')
def on_startup() -> None:
    logger.info('Trusted proxy API ready (policy=%s)', settings.trusted_proxy_policy)


@app.on_event('shutdown')
async def on_shutdown() -> None:
    await upstream_client.aclose()


@app.get('/healthz')
def healthcheck() -> dict:
    return {'status': 'ok'}


@app.get('/whoami', response_model=ForwardedRequestRead)
def whoami(forwarded: ForwardedRequest = Depends(get_forwarded_request)) -> ForwardedRequestRead:
    return ForwardedRequestRead.from_forwarded(forwarded, strip_forwarded_ips=settings.forward_strip_ips)


@app.api_route('/proxy/{path:path}', methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE'])
async def proxy(
    path: str,
    request: Request,
    forwarded: ForwardedRequest = Depends(get_forwarded_request),
) -> Response:
    if not settings.forward_upstream_url:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Upstream not configured')

    upstream_request = build_upstream_request(
        forwarded,
        settings.forward_upstream_url,
        await request.body(),
        path=f'/{path}',
        strip_forwarded_ips=settings.forward_strip_ips,
    )
    try:
        upstream_response = await upstream_client.send(upstream_request)
    except httpx.HTTPError as exc:
        logger.warning('Upstream request to %s failed: %s', upstream_request.url, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail='Upstream unavailable') from exc

    return Response(
        content=upstream_response.content,
        status_code=upstream_response.status_code,
        headers=response_headers(upstream_response),
    )
