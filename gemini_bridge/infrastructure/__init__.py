"""基础设施层：日志与缓存存储实现。"""
