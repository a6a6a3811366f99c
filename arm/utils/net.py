"""网络工具 - URL 安全校验与最小 HTTP 客户端

注册表驱动通过 HttpClient 访问 REST API；测试时可注入任何实现了
get() 的对象替代。
"""

from __future__ import annotations

import json
import logging
import re
import socket
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

from arm.core.exceptions import (
    AuthFailedError,
    PackageNotFoundError,
    RegistryUnreachableError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_ALLOWED_SCHEMES = frozenset(("http", "https"))

_LINK_NEXT_RE = re.compile(r'<([^>]+)>\s*;\s*rel="?next"?')

DEFAULT_TIMEOUT = 30


def validate_url_scheme(url: str, *, context: str = "") -> None:
    """校验 URL 仅使用 http/https，防止 file:// 等非预期协议访问

    Raises:
        ValidationError: URL scheme 不在白名单内
    """
    parsed = urlparse(url)
    if parsed.scheme not in _ALLOWED_SCHEMES:
        label = f" ({context})" if context else ""
        raise ValidationError(
            f"不允许的 URL 协议 '{parsed.scheme}'{label}，"
            f"仅支持 http/https: {url}"
        )


def next_link(link_header: str) -> str:
    """从 Link 响应头中提取 rel="next" 的 URL，不存在返回空串"""
    for part in link_header.split(","):
        m = _LINK_NEXT_RE.search(part)
        if m:
            return m.group(1)
    return ""


@dataclass
class HttpResponse:
    """HTTP 响应（与 urllib 解耦）"""

    status: int
    body: bytes
    headers: dict[str, str] = field(default_factory=dict)

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))

    def header(self, name: str) -> str:
        for k, v in self.headers.items():
            if k.lower() == name.lower():
                return v
        return ""


class HttpClient:
    """基于 urllib 的 GET 客户端，统一超时与错误映射

    错误映射:
        401/403 → AuthFailedError
        404     → PackageNotFoundError
        其他 ≥400 / 连接失败 / 超时 → RegistryUnreachableError
    """

    def __init__(self, timeout: int = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout

    def get(self, url: str, headers: dict[str, str] | None = None) -> HttpResponse:
        validate_url_scheme(url, context="registry request")
        req = urllib.request.Request(url, headers=headers or {})
        logger.debug("GET %s", url)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:  # nosec B310
                return HttpResponse(
                    status=resp.status,
                    body=resp.read(),
                    headers=dict(resp.headers.items()),
                )
        except urllib.error.HTTPError as e:
            raise _map_status(e.code, url) from e
        except (urllib.error.URLError, socket.timeout, OSError) as e:
            raise RegistryUnreachableError(f"请求失败 {url}: {e}") from e


def _map_status(status: int, url: str) -> Exception:
    if status in (401, 403):
        return AuthFailedError(f"认证失败 (HTTP {status}): {url}")
    if status == 404:
        return PackageNotFoundError(f"资源不存在 (HTTP 404): {url}")
    return RegistryUnreachableError(f"请求失败 (HTTP {status}): {url}")


def check_status(resp: HttpResponse, url: str) -> HttpResponse:
    """对注入客户端返回的响应做同样的状态码检查"""
    if resp.status >= 400:
        raise _map_status(resp.status, url)
    return resp
