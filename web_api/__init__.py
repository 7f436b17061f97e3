"""Web API 模块"""
