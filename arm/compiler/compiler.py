"""编译编排 - 解析 → 逐条目生成 → 返回批次

纯变换，不做任何 I/O；写文件由调用方（sink 安装器 / compile 命令）负责。
"""

from __future__ import annotations

import posixpath

from arm.compiler.emitters import get_emitter
from arm.compiler.schema import Resource, parse_resource
from arm.core.models import File

COMPILABLE_EXTENSIONS = (".yml", ".yaml")


def is_compilable_path(path: str) -> bool:
    return path.lower().endswith(COMPILABLE_EXTENSIONS)


def compile_resource(
    resource: Resource, target: str, namespace: str, directory: str = "",
) -> list[File]:
    """每条规则/提示词生成一个文件，按条目 id 排序"""
    emitter = get_emitter(target)
    outputs: list[File] = []
    if resource.is_ruleset:
        for rule in sorted(resource.rules, key=lambda r: r.id):
            name = emitter.rule_filename(resource, rule)
            body = emitter.render_rule(resource, rule, namespace)
            outputs.append(File(posixpath.join(directory, name), body.encode("utf-8")))
    else:
        for prompt in sorted(resource.prompts, key=lambda p: p.id):
            name = emitter.prompt_filename(resource, prompt)
            body = emitter.render_prompt(resource, prompt, namespace)
            outputs.append(File(posixpath.join(directory, name), body.encode("utf-8")))
    return outputs


def compile_file(source: File, target: str, namespace: str = "") -> list[File]:
    """编译单个源文件；输出与源文件位于同一相对目录

    namespace 缺省时使用源文件名（不含扩展名）。
    """
    resource = parse_resource(source.content, source.path)
    directory = posixpath.dirname(source.path)
    if not namespace:
        namespace = posixpath.splitext(posixpath.basename(source.path))[0]
    return compile_resource(resource, target, namespace, directory)
