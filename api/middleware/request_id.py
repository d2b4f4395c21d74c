"""
Request ID 中间件
生成或透传追踪ID，解析客户端IP，并绑定到 structlog 上下文
"""
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from api.utils.network import resolve_client_ip
from core.config import settings


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Request ID 追踪中间件

    1. 从 X-Request-ID 获取或生成 request_id，并写回响应头
    2. 解析客户端IP：仅在 TRUST_PROXY_HEADERS 开启时信任 X-Forwarded-For / X-Real-IP，
       否则回调IP白名单可被伪造的请求头绕过
    3. 绑定到 structlog 上下文
    """

    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        client_ip = resolve_client_ip(
            request.headers,
            request.client.host if request.client else None,
            trust_proxy_headers=settings.TRUST_PROXY_HEADERS,
        )

        request.state.request_id = request_id
        request.state.client_ip = client_ip

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            client_ip=client_ip,
            method=request.method,
            path=request.url.path,
        )

        response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        return response
