"""环境变量读取工具"""

import os


def get_config(key: str, default, type_func: type = str):
    """
    从环境变量读取配置
    
    Args:
        key: 环境变量名
        default: 未设置或无法解析时的默认值
        type_func: 目标类型（str / int / float / bool）
    
    Returns:
        解析后的配置值
    """
    value = os.getenv(key)
    if value is None:
        return default
    if type_func == bool:
        return value.lower() in ('true', '1', 'yes', 'on')
    try:
        return type_func(value)
    except ValueError:
        return default
