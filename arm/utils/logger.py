"""arm 日志配置

日志挂在 "arm" 包日志器上，输出到 stderr；stdout 只留给命令结果。
环境变量:
    ARM_LOG_LEVEL  未指定 -v 时的级别（默认 WARNING）
    ARM_LOG_JSON   为 1 时输出单行 JSON，便于 CI 收集
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone

LOGGER_NAME = "arm"
LEVEL_ENV = "ARM_LOG_LEVEL"
JSON_ENV = "ARM_LOG_JSON"

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """单行 JSON；异常是 ArmError 时附带其错误码"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            err = record.exc_info[1]
            code = getattr(err, "code", None)
            if code:
                entry["code"] = code
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(verbose: bool = False) -> logging.Logger:
    """按 -v 与环境变量配置 arm 日志器，重复调用只保留一个 handler"""
    logger = logging.getLogger(LOGGER_NAME)
    reset_logging()
    level = "DEBUG" if verbose else os.getenv(LEVEL_ENV, "WARNING")
    logger.setLevel(getattr(logging, level.upper(), logging.WARNING))
    logger.propagate = False

    handler = logging.StreamHandler(sys.stderr)
    if os.getenv(JSON_ENV, "") == "1":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
    logger.addHandler(handler)
    return logger


def reset_logging() -> None:
    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
