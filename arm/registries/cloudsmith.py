"""Cloudsmith raw 包注册表驱动

- 版本列表: packages API 按名称查询，沿 Link rel="next" 翻页
- 解析 id: 版本号（Cloudsmith 版本不可变）
- 拉取: 下载该版本所有文件的 cdn_url
- 认证: 环境变量 CLOUDSMITH_API_KEY → Authorization: Token
"""

from __future__ import annotations

import logging
import os
from typing import Any
from urllib.parse import quote

from arm.core.exceptions import PackageNotFoundError
from arm.core.models import File, Version
from arm.core.version import is_semver, sort_versions_desc, tagged_version
from arm.registries.base import Registry
from arm.services.cache import ContentCache
from arm.utils.net import HttpClient, check_status, next_link

logger = logging.getLogger(__name__)

API_KEY_ENV = "CLOUDSMITH_API_KEY"
DEFAULT_URL = "https://api.cloudsmith.io"
PAGE_SIZE = 100


class CloudsmithRegistry(Registry):
    """Cloudsmith 注册表"""

    kind = "cloudsmith"

    def __init__(
        self,
        name: str,
        config: dict[str, Any],
        cache: ContentCache | None = None,
        client: Any = None,
        api_key: str | None = None,
    ) -> None:
        super().__init__(name, config, cache)
        self.base_url = str(config.get("url") or DEFAULT_URL).rstrip("/")
        self.owner = str(config.get("owner", ""))
        self.repository = str(config.get("repository", ""))
        self._client = client or HttpClient()
        self._api_key = api_key if api_key is not None else os.getenv(API_KEY_ENV, "")

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Token {self._api_key}"
        return headers

    def _list_packages(self, package: str) -> list[dict[str, Any]]:
        url = (
            f"{self.base_url}/v1/packages/{quote(self.owner)}/{quote(self.repository)}/"
            f"?query={quote('name:' + package)}&page_size={PAGE_SIZE}"
        )
        result: list[dict[str, Any]] = []
        while url:
            resp = check_status(self._client.get(url, headers=self._headers()), url)
            items = resp.json()
            if isinstance(items, list):
                result.extend(items)
            url = next_link(resp.header("Link"))
        return [
            p for p in result
            if p.get("name") == package and p.get("format", "raw") == "raw"
        ]

    def list_versions(self, package: str) -> list[Version]:
        packages = self._list_packages(package)
        if not packages:
            raise PackageNotFoundError(
                f"Cloudsmith 注册表 {self.name} 中不存在包: {package}"
            )
        versions: dict[str, Version] = {}
        for p in packages:
            display = str(p.get("version", ""))
            if display in versions:
                continue
            versions[display] = (
                tagged_version(display, display) if is_semver(display)
                else Version(resolved_id=display, display=display)
            )
        return sort_versions_desc(list(versions.values()))

    def _fetch(self, package: str, version: Version) -> list[File]:
        packages = [
            p for p in self._list_packages(package)
            if str(p.get("version", "")) == version.resolved_id
        ]
        if not packages:
            raise PackageNotFoundError(
                f"Cloudsmith 注册表 {self.name} 中不存在 {package}@{version.display}"
            )
        files: list[File] = []
        for p in packages:
            url = str(p.get("cdn_url", ""))
            filename = str(p.get("filename", "")) or url.rsplit("/", 1)[-1]
            if not url:
                continue
            resp = check_status(self._client.get(url, headers=self._headers()), url)
            files.append(File(path=filename, content=resp.body))
        logger.info(
            "Cloudsmith 下载完成: %s/%s@%s (%d 个文件)",
            self.name, package, version.display, len(files),
        )
        return files
