"""HTTP / WebSocket 路由"""
