"""批次处理监控和统计"""

import json
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional


class MonitoringLogger:
    """监控日志记录器"""
    
    def __init__(self, log_file: Optional[Path] = None):
        """
        初始化监控日志记录器
        
        Args:
            log_file: 日志文件路径，如果为None则使用默认路径
        """
        if log_file is None:
            log_file = Path("logs_debug") / "batch_stats.jsonl"
        
        self.log_file = Path(log_file)
        self.log_file.parent.mkdir(parents=True, exist_ok=True)
    
    def log_batch_processing(self, stats: Dict[str, Any]) -> None:
        """
        记录批次处理统计
        
        Args:
            stats: 统计信息字典，包含：
                - batch_id: 批次ID
                - status: 终态
                - chunk_count: 分块数量
                - content_duration: 内容时长（秒）
                - cards_count: 生成的卡片数量
                - processing_time: 处理用时（秒）
                - reason: 失败原因（可选）
                - timestamp: 处理完成时间戳
        """
        if 'timestamp' not in stats:
            stats['timestamp'] = datetime.now().isoformat()
        
        try:
            with self.log_file.open("a", encoding="utf-8") as f:
                json.dump(stats, f, ensure_ascii=False)
                f.write("\n")
        except OSError as e:
            print(f"[Warning]: 写入监控日志失败: {e}")
    
    def print_batch_stats(self, stats: Dict[str, Any]) -> None:
        """打印批次处理统计到控制台"""
        batch_id = stats.get('batch_id', 'unknown')
        status = stats.get('status', 'unknown')
        
        print(f"[Dispatcher] 批次 {batch_id} 处理结束: {status}")
        print(f"  - 分块数量: {stats.get('chunk_count', 0)}")
        print(f"  - 内容时长: {stats.get('content_duration', 0):.2f} 秒")
        print(f"  - 处理用时: {stats.get('processing_time', 0):.2f} 秒")
        print(f"  - 生成卡片: {stats.get('cards_count', 0)} 个")
        if stats.get('reason'):
            print(f"  - 原因: {stats['reason']}")
