"""
业务服务包 (Business Services Package)

探测、执行、重试、告警去重与通知、SLA 汇总以及只读查询。
"""
