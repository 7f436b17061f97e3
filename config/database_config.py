"""数据库配置模块"""

from dotenv import load_dotenv

from config.env import get_config

# 加载 .env 文件
load_dotenv()


class DatabaseConfig:
    """SeekDB（MySQL 协议）连接配置"""

    HOST: str = get_config("SEEKDB_HOST", "127.0.0.1")
    PORT: int = get_config("SEEKDB_PORT", 2881, int)
    DATABASE: str = get_config("SEEKDB_DATABASE", "screen_journal")
    USER: str = get_config("SEEKDB_USER", "root")
    PASSWORD: str = get_config("SEEKDB_PASSWORD", "")
    # 连接超时（秒），录制线程不应长时间卡在数据库上
    CONNECT_TIMEOUT: int = get_config("SEEKDB_CONNECT_TIMEOUT", 10, int)

    @classmethod
    def get_connection_string(cls, with_database: bool = True) -> dict:
        """
        获取 pymysql.connect 的连接参数

        Args:
            with_database: 是否包含数据库名（初始化脚本建库前需要不带库名连接）
        """
        params = {
            "host": cls.HOST,
            "port": cls.PORT,
            "user": cls.USER,
            "password": cls.PASSWORD,
            "connect_timeout": cls.CONNECT_TIMEOUT,
        }
        if with_database:
            params["database"] = cls.DATABASE
        return params
