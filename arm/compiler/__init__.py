"""编译器 - 中立资源格式 → 各 AI 工具的原生文件

拆分说明:
- schema.py: 资源文档解析与校验
- emitters.py: 各目标的文件命名、front-matter 与正文装饰
- compiler.py: 编排（解析 → 逐条目生成 → 返回批次），不做 I/O
"""

from arm.compiler.compiler import compile_file, compile_resource, is_compilable_path
from arm.compiler.emitters import get_emitter, supported_targets
from arm.compiler.schema import Prompt, Resource, Rule, parse_resource

__all__ = [
    "compile_file",
    "compile_resource",
    "is_compilable_path",
    "get_emitter",
    "supported_targets",
    "parse_resource",
    "Resource",
    "Rule",
    "Prompt",
]
