"""统一异常体系

所有业务异常继承 ArmError，每个子类携带一个 code 作为错误类别标签。
CLI 层据此输出 "[CODE] 消息" 并以非零状态退出。
"""

from __future__ import annotations


class ArmError(Exception):
    """基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ArmError):
    """清单/锁文件/注册表/sink/包 不存在"""

    code = "NOT_FOUND"


class PackageNotFoundError(NotFoundError):
    """远端注册表中找不到指定包"""

    code = "PACKAGE_NOT_FOUND"


class AlreadyExistsError(ArmError):
    """添加已存在的条目且未指定 force"""

    code = "ALREADY_EXISTS"


class InvalidConfigError(ArmError):
    """清单内容无效（格式错误、未知编译目标、缺少必填字段）"""

    code = "INVALID_CONFIG"


class InvalidConstraintError(ArmError):
    """无法解析的版本约束"""

    code = "INVALID_CONSTRAINT"


class NoVersionSatisfiesError(ArmError):
    """没有任何可用版本满足约束"""

    code = "NO_VERSION_SATISFIES"


class RegistryUnreachableError(ArmError):
    """远端注册表不可达（网络错误、超时、git 失败）"""

    code = "REGISTRY_UNREACHABLE"


class AuthFailedError(ArmError):
    """远端注册表认证失败"""

    code = "AUTH_FAILED"


class ChecksumMismatchError(ArmError):
    """内容校验和与锁文件记录不一致"""

    code = "CHECKSUM_MISMATCH"


class ManifestMissingError(ArmError):
    """只有锁文件没有清单"""

    code = "MANIFEST_MISSING"


class NoConfigurationError(ArmError):
    """清单与锁文件都不存在"""

    code = "NO_CONFIGURATION"


class UnsupportedTargetError(ArmError):
    """未知的编译目标"""

    code = "UNSUPPORTED_TARGET"


class CacheLockTimeoutError(ArmError):
    """等待缓存写锁超时"""

    code = "CACHE_LOCK_TIMEOUT"


class ValidationError(ArmError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class CompileError(ArmError):
    """资源文件编译失败，携带文件路径与原因"""

    code = "COMPILE_ERROR"

    def __init__(
        self, path: str, reason: str, details: list[str] | None = None,
    ) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason
        self.details = details or []
