"""会话历史与服务端缓存句柄的持久化（基于宿主缓存存储）。"""
