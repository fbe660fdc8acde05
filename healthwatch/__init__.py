"""
HealthWatch 合成健康监控与告警引擎 (Synthetic Health Monitoring and Alerting Engine)

周期性探测目标应用的关键接口，记录健康日志，去重告警，并生成月度 SLA 报告。

Periodically probes the target application's critical surfaces, records health logs,
deduplicates alerts, and rolls results up into monthly SLA reports.
"""
__version__ = "0.1.0"
