"""
API 路由包 (API Router Package)

管理端健康看板 / SLA 报告路由与公开状态页路由。
"""
