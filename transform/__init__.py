"""视频变换模块"""
