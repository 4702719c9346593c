"""配置层：GeminiSettings 与默认 settings 实例。"""
