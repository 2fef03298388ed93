"""ZigTask Core -- 领域模型、错误分类、事件总线与 SQLite 存储"""
