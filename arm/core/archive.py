"""压缩包展开

注册表下载到的 .tar.gz / .tgz / .zip 在入缓存前展开：成员放到以压缩包名
（去扩展名）命名的子目录下，压缩包本身不再保留。拒绝路径穿越成员。
"""

from __future__ import annotations

import io
import logging
import posixpath
import tarfile
import zipfile

from arm.core.exceptions import ValidationError
from arm.core.models import File

logger = logging.getLogger(__name__)

_TAR_SUFFIXES = (".tar.gz", ".tgz")
_ZIP_SUFFIXES = (".zip",)


def is_archive(path: str) -> bool:
    lower = path.lower()
    return lower.endswith(_TAR_SUFFIXES + _ZIP_SUFFIXES)


def _stem(path: str) -> str:
    lower = path.lower()
    for suffix in _TAR_SUFFIXES + _ZIP_SUFFIXES:
        if lower.endswith(suffix):
            return path[: -len(suffix)]
    return path


def _safe_member(name: str, archive: str) -> str:
    norm = posixpath.normpath(name.replace("\\", "/")).lstrip("/")
    if norm.startswith("..") or norm in ("", "."):
        raise ValidationError(f"压缩包 {archive} 含非法成员路径: {name}")
    return norm


def _extract_tar(data: bytes, archive: str) -> list[tuple[str, bytes]]:
    members: list[tuple[str, bytes]] = []
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as tf:
        for info in tf.getmembers():
            if not info.isfile():
                continue
            fh = tf.extractfile(info)
            if fh is None:
                continue
            members.append((_safe_member(info.name, archive), fh.read()))
    return members


def _extract_zip(data: bytes, archive: str) -> list[tuple[str, bytes]]:
    members: list[tuple[str, bytes]] = []
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        for info in zf.infolist():
            if info.is_dir():
                continue
            members.append((_safe_member(info.filename, archive), zf.read(info)))
    return members


def extract_archive(f: File) -> list[File]:
    """展开单个压缩包文件；损坏的包抛 ValidationError"""
    prefix = _stem(f.path)
    try:
        if f.path.lower().endswith(_ZIP_SUFFIXES):
            members = _extract_zip(f.content, f.path)
        else:
            members = _extract_tar(f.content, f.path)
    except (tarfile.TarError, zipfile.BadZipFile, EOFError) as e:
        raise ValidationError(f"无法解压 {f.path}: {e}") from e
    logger.debug("解压 %s: %d 个文件", f.path, len(members))
    return [File(path=f"{prefix}/{name}", content=data) for name, data in members]


def expand_archives(files: list[File]) -> list[File]:
    """把文件列表中的压缩包替换为其成员，其他文件原样保留"""
    result: list[File] = []
    for f in files:
        if is_archive(f.path):
            result.extend(extract_archive(f))
        else:
            result.append(f)
    return result
