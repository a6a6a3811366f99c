"""核心层 - 纯领域逻辑与持久化存储

拆分说明:
- exceptions.py: 统一异常体系
- config.py: 进程级配置 + 清单/锁文件路径解析
- models.py: 数据契约 (Version / File / 配置条目)
- version.py: 语义化版本、约束解析与版本选择
- pattern.py: glob 匹配与内容过滤
- checksum.py: 内容校验和
- archive.py: 压缩包展开
- document.py: JSON 文档存储基类
- manifest.py: 清单存储
- lockfile.py: 锁文件存储
"""
