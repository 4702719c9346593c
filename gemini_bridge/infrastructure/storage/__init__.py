"""缓存存储实现与按名称解析的注册表。"""
