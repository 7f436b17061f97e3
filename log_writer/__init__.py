"""LLM 调用审计模块"""
