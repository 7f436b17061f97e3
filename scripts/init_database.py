#!/usr/bin/env python3
"""数据库初始化脚本"""

import sys
from pathlib import Path

import pymysql
from dotenv import load_dotenv

# 加载环境变量（.env 文件）
load_dotenv()

# 添加项目根目录到路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config.database_config import DatabaseConfig
from storage.seekdb_client import SeekDBClient


def split_sql_statements(sql_content: str) -> list:
    """按分号拆分 SQL，去掉纯注释行"""
    statements = []
    for s in sql_content.split(';'):
        lines = [line.strip() for line in s.split('\n') if line.strip() and not line.strip().startswith('--')]
        if lines:
            statements.append(' '.join(lines))
    return statements


def execute_sql_file(file_path: Path, connection, database_name: str):
    """
    执行 SQL 文件
    
    文件中的 CREATE DATABASE / USE 语句会被替换为配置中的数据库名。
    """
    with open(file_path, 'r', encoding='utf-8') as f:
        statements = split_sql_statements(f.read())
    
    table_statements = [
        s for s in statements
        if not s.upper().startswith('CREATE DATABASE') and not s.upper().startswith('USE ')
    ]
    
    with connection.cursor() as cursor:
        cursor.execute(
            f"CREATE DATABASE IF NOT EXISTS {database_name} "
            "CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
        )
        connection.commit()
        print(f"  数据库 '{database_name}' 创建成功（或已存在）")
        
        connection.select_db(database_name)
        print(f"  已切换到数据库 '{database_name}'")
        
        for statement in table_statements:
            try:
                cursor.execute(statement)
            except Exception as e:
                print(f"执行 SQL 失败: {statement[:100]}...")
                print(f"错误: {e}")
                raise
    
    connection.commit()


def drop_database(connection, database_name: str):
    """删除数据库（如果存在）"""
    with connection.cursor() as cursor:
        cursor.execute(f"DROP DATABASE IF EXISTS {database_name}")
    connection.commit()
    print(f"  已删除数据库 '{database_name}'（如果存在）")


def connect_server():
    """连接到 MySQL（不指定数据库）"""
    return pymysql.connect(**DatabaseConfig.get_connection_string(with_database=False), charset='utf8mb4')


def main():
    import argparse
    
    parser = argparse.ArgumentParser(description='初始化数据库')
    parser.add_argument('--drop-first', action='store_true',
                       help='先删除数据库再重新创建（清空所有数据）')
    args = parser.parse_args()
    
    print("开始初始化数据库...")
    database_name = DatabaseConfig.DATABASE
    
    if args.drop_first:
        print("步骤 0/2: 删除现有数据库...")
        try:
            conn = connect_server()
            drop_database(conn, database_name)
            conn.close()
        except Exception as e:
            print(f"  删除数据库失败: {e}")
            sys.exit(1)
    
    print("步骤 1/2: 创建数据库和表...")
    schema_file = project_root / 'storage' / 'schema.sql'
    if not schema_file.exists():
        print(f"错误: Schema 文件不存在: {schema_file}")
        sys.exit(1)
    
    try:
        conn = connect_server()
        execute_sql_file(schema_file, conn, database_name)
        conn.close()
        print("  数据库和表创建成功")
    except Exception as e:
        print(f"  创建数据库和表失败: {e}")
        sys.exit(1)
    
    print("步骤 2/2: 验证数据库...")
    try:
        with SeekDBClient() as db:
            db.fetch_recent_batches(1)
        print("  数据库初始化成功！")
    except Exception as e:
        print(f"  验证失败: {e}")
        sys.exit(1)
    
    print("\n数据库初始化完成！")


if __name__ == '__main__':
    main()
