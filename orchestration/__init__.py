"""批次调度模块"""
