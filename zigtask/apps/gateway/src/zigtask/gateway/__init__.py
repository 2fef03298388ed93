"""ZigTask Gateway -- FastAPI 应用：鉴权与任务 REST 接口 + WebSocket 实时通道"""
