"""
请求/响应数据模型包 (Request/Response Schema Package)
"""
