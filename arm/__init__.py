"""arm - AI 规则/提示词资源管理器

以 npm 的方式管理 AI 助手的规则集 (ruleset) 与提示词集 (promptset)：
清单声明期望状态，锁文件记录精确解析结果，命令负责让文件系统与两者保持一致。
"""

__version__ = "0.4.0"
