"""分析服务接口定义"""

from abc import ABC, abstractmethod
from typing import List

from storage.models import ActivityCard, RecordingChunk


class AnalysisError(RuntimeError):
    """分析服务调用失败"""


class AnalysisService(ABC):
    """批次分析服务接口"""
    
    @abstractmethod
    async def analyze(self, batch_id: int, chunks: List[RecordingChunk]) -> List[ActivityCard]:
        """
        分析一个批次的录制内容
        
        每个批次只调用一次，不做重试。
        
        Args:
            batch_id: 批次ID（用于调用审计）
            chunks: 按时间排序的分块
        
        Returns:
            活动卡片列表，时间为拼接视频内的相对位置
        
        Raises:
            AnalysisError: 调用失败或输出无法解析
        """
        pass
