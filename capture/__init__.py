"""屏幕录制模块"""
