"""后端入口模块"""
