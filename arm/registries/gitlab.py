"""GitLab 通用包 (generic packages) 注册表驱动

- 版本列表: 项目或群组的 packages API（分页），只取 generic 类型且同名的包
- 解析 id: 包的数字 id
- 拉取: 列出 package_files 后逐个下载，压缩包由基类展开
- 认证: 环境变量 GITLAB_TOKEN → Authorization: Bearer
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
from arm.utils.net import HttpClient, check_status

logger = logging.getLogger(__name__)

TOKEN_ENV = "GITLAB_TOKEN"
DEFAULT_URL = "https://gitlab.com"
DEFAULT_API_VERSION = "v4"
PER_PAGE = 100


def normalize_base_url(url: str) -> str:
    url = (url or DEFAULT_URL).rstrip("/")
    if "://" not in url:
        url = "https://" + url
    return url


class GitLabRegistry(Registry):
    """GitLab generic packages 注册表"""

    kind = "gitlab"

    def __init__(
        self,
        name: str,
        config: dict[str, Any],
        cache: ContentCache | None = None,
        client: Any = None,
        token: str | None = None,
    ) -> None:
        super().__init__(name, config, cache)
        self.base_url = normalize_base_url(str(config.get("url", "")))
        self.api_version = str(config.get("apiVersion") or DEFAULT_API_VERSION)
        self.project_id = str(config.get("projectId", "") or "")
        self.group_id = str(config.get("groupId", "") or "")
        self._client = client or HttpClient()
        self._token = token if token is not None else os.getenv(TOKEN_ENV, "")
        # 解析 id → 包元数据，_fetch 需要 project_id 与 version
        self._packages: dict[str, dict[str, Any]] = {}

    def _api(self, path: str) -> str:
        return f"{self.base_url}/api/{self.api_version}/{path}"

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _get(self, url: str) -> Any:
        return check_status(self._client.get(url, headers=self._headers()), url)

    def _list_packages(self, package: str) -> list[dict[str, Any]]:
        if self.project_id:
            path = f"projects/{quote(self.project_id, safe='')}/packages"
        else:
            path = f"groups/{quote(self.group_id, safe='')}/packages"
        result: list[dict[str, Any]] = []
        page = 1
        while True:
            url = self._api(
                f"{path}?package_type=generic&package_name={quote(package)}"
                f"&per_page={PER_PAGE}&page={page}"
            )
            items = self._get(url).json()
            if not isinstance(items, list) or not items:
                break
            result.extend(items)
            if len(items) < PER_PAGE:
                break
            page += 1
        return [
            p for p in result
            if p.get("name") == package and p.get("package_type", "generic") == "generic"
        ]

    def list_versions(self, package: str) -> list[Version]:
        packages = self._list_packages(package)
        if not packages:
            raise PackageNotFoundError(f"GitLab 注册表 {self.name} 中不存在包: {package}")
        versions: list[Version] = []
        for p in packages:
            pkg_id = str(p.get("id", ""))
            display = str(p.get("version", ""))
            self._packages[pkg_id] = p
            if is_semver(display):
                versions.append(tagged_version(display, pkg_id))
            else:
                versions.append(Version(resolved_id=pkg_id, display=display))
        return sort_versions_desc(versions)

    def _fetch(self, package: str, version: Version) -> list[File]:
        if version.resolved_id not in self._packages:
            self.list_versions(package)
        meta = self._packages.get(version.resolved_id, {})
        project_id = str(meta.get("project_id") or self.project_id)
        if not project_id:
            raise PackageNotFoundError(
                f"无法确定包 {package}@{version.display} 所属项目 ({self.name})"
            )
        pid = quote(project_id, safe="")
        listing = self._get(self._api(
            f"projects/{pid}/packages/{version.resolved_id}/package_files"
            f"?per_page={PER_PAGE}"
        )).json()
        files: list[File] = []
        for entry in listing or []:
            filename = str(entry.get("file_name", ""))
            if not filename:
                continue
            url = self._api(
                f"projects/{pid}/packages/generic/{quote(package)}/"
                f"{quote(version.display)}/{quote(filename)}"
            )
            files.append(File(path=filename, content=self._get(url).body))
        logger.info(
            "GitLab 下载完成: %s/%s@%s (%d 个文件)",
            self.name, package, version.display, len(files),
        )
        return files
