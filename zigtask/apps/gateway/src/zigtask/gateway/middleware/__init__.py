"""HTTP 中间件与日志配置"""
