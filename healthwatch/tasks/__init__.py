"""
后台定时任务包 (Background Task Package)
"""
