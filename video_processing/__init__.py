"""视频分析模块"""
