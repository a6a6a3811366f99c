"""服务层

拆分说明:
- cache.py: 内容寻址缓存 + 按注册表的写锁
- sink.py: sink 安装器（分层/扁平布局、反向索引、规则集索引文件）
- orchestrator/: 高层命令（install/update/upgrade/uninstall/clean ...）
- compile_service.py: compile 命令的文件发现与批量编译
- converter.py: Markdown / Cursor 规则 → 资源文档
- container.py: 懒加载服务容器
"""
