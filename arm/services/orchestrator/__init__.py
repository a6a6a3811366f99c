"""编排器模块

拆分说明:
- models.py: 批量结果与中间数据
- service.py: 高层命令实现 (ArmService)
"""

from arm.services.orchestrator.models import BatchResult, ItemResult, OutdatedInfo
from arm.services.orchestrator.service import ArmService

__all__ = [
    "ArmService",
    "BatchResult",
    "ItemResult",
    "OutdatedInfo",
]
