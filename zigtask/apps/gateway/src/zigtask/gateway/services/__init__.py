"""业务服务：任务、鉴权、实时网关"""
