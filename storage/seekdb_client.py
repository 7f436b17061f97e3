"""SeekDB 客户端封装（分块存储的 MySQL 协议实现）"""

import json
import threading
import time
from typing import Any, Dict, List, Optional

import pymysql
from pymysql.cursors import DictCursor

from config.database_config import DatabaseConfig
from storage.interface import ChunkStore
from storage.models import (
    Batch,
    BatchStatus,
    ChunkStatus,
    LLMCallRecord,
    RecordingChunk,
    TimelineCard,
    TimelineDistraction,
)


class SeekDBClient(ChunkStore):
    """SeekDB 客户端"""

    def __init__(self, config: Optional[DatabaseConfig] = None):
        """初始化客户端"""
        if config is None:
            config = DatabaseConfig()
        self.config = config
        self.connection = None
        # 录制、调度、分析都会访问同一连接，串行化
        self._lock = threading.RLock()
        self._connect()

    def _connect(self):
        """建立数据库连接"""
        try:
            self.connection = pymysql.connect(
                **self.config.get_connection_string(),
                charset='utf8mb4',
                cursorclass=DictCursor,
                autocommit=False
            )
        except Exception as e:
            raise ConnectionError(f"无法连接到 SeekDB: {e}")

    def _ensure_connected(self):
        """确保连接可用"""
        if self.connection is None:
            self._connect()
        try:
            self.connection.ping(reconnect=True)
        except pymysql.MySQLError:
            self._connect()

    def _execute_write(self, sql: str, params: tuple, error_message: str) -> int:
        """执行单条写语句并提交，返回 lastrowid"""
        with self._lock:
            self._ensure_connected()
            try:
                with self.connection.cursor() as cursor:
                    cursor.execute(sql, params)
                    row_id = cursor.lastrowid
                self.connection.commit()
                return row_id
            except Exception as e:
                self.connection.rollback()
                raise RuntimeError(f"{error_message}: {e}")

    def _fetch_all(self, sql: str, params: tuple, error_message: str) -> List[Dict[str, Any]]:
        """执行查询并返回全部行"""
        with self._lock:
            self._ensure_connected()
            try:
                with self.connection.cursor() as cursor:
                    cursor.execute(sql, params)
                    return list(cursor.fetchall())
            except Exception as e:
                raise RuntimeError(f"{error_message}: {e}")

    # ---------------------------------------------------------------- 分块

    def register_chunk(self, file_path: str, start_ts: float) -> int:
        """登记新分块，结束时间先按开始时间占位"""
        sql = """
            INSERT INTO chunks (file_path, start_ts, end_ts, status)
            VALUES (%s, %s, %s, %s)
        """
        return self._execute_write(
            sql,
            (file_path, start_ts, start_ts, ChunkStatus.PENDING.value),
            "登记分块失败"
        )

    def mark_chunk_completed(self, file_path: str, end_ts: Optional[float] = None) -> None:
        """标记分块完成并写入实际结束时间"""
        sql = """
            UPDATE chunks
            SET status = %s, end_ts = %s
            WHERE file_path = %s
        """
        self._execute_write(
            sql,
            (ChunkStatus.COMPLETED.value, end_ts if end_ts is not None else time.time(), file_path),
            "更新分块状态失败"
        )

    def mark_chunk_failed(self, file_path: str) -> None:
        """标记分块失败"""
        sql = "UPDATE chunks SET status = %s WHERE file_path = %s"
        self._execute_write(sql, (ChunkStatus.FAILED.value, file_path), "更新分块状态失败")

    def fetch_unprocessed_chunks(self, older_than: float) -> List[RecordingChunk]:
        """获取已完成、未归入任何批次的分块"""
        sql = """
            SELECT c.id, c.file_path, c.start_ts, c.end_ts, c.status
            FROM chunks c
            LEFT JOIN batch_chunks bc ON bc.chunk_id = c.id
            WHERE c.status = %s
              AND c.start_ts >= %s
              AND bc.chunk_id IS NULL
            ORDER BY c.start_ts ASC
        """
        rows = self._fetch_all(sql, (ChunkStatus.COMPLETED.value, older_than), "查询未处理分块失败")
        return [self._row_to_chunk(row) for row in rows]

    def chunks_for_batch(self, batch_id: int) -> List[RecordingChunk]:
        """获取批次中的分块"""
        sql = """
            SELECT c.id, c.file_path, c.start_ts, c.end_ts, c.status, bc.batch_id
            FROM batch_chunks bc
            JOIN chunks c ON c.id = bc.chunk_id
            WHERE bc.batch_id = %s
            ORDER BY c.start_ts ASC
        """
        rows = self._fetch_all(sql, (batch_id,), "查询批次分块失败")
        return [self._row_to_chunk(row) for row in rows]

    @staticmethod
    def _row_to_chunk(row: Dict[str, Any]) -> RecordingChunk:
        return RecordingChunk(
            chunk_id=row['id'],
            file_path=row['file_path'],
            start_ts=float(row['start_ts']),
            end_ts=float(row['end_ts']),
            status=ChunkStatus(row['status']),
            batch_id=row.get('batch_id')
        )

    # ---------------------------------------------------------------- 批次

    def save_batch(self, start_ts: float, end_ts: float, chunk_ids: List[int]) -> Optional[int]:
        """保存批次及分块关联（同一事务）"""
        if not chunk_ids:
            return None

        with self._lock:
            self._ensure_connected()
            try:
                with self.connection.cursor() as cursor:
                    cursor.execute(
                        """
                        INSERT INTO analysis_batches (batch_start_ts, batch_end_ts, status)
                        VALUES (%s, %s, %s)
                        """,
                        (start_ts, end_ts, BatchStatus.PENDING.value)
                    )
                    batch_id = cursor.lastrowid
                    cursor.executemany(
                        "INSERT INTO batch_chunks (batch_id, chunk_id) VALUES (%s, %s)",
                        [(batch_id, chunk_id) for chunk_id in chunk_ids]
                    )
                self.connection.commit()
                return batch_id
            except pymysql.IntegrityError as e:
                # 分块已属于其他批次
                self.connection.rollback()
                print(f"[SeekDB]: 保存批次失败，分块已被占用: {e}")
                return None
            except Exception as e:
                self.connection.rollback()
                raise RuntimeError(f"保存批次失败: {e}")

    def update_batch_status(self, batch_id: int, status: BatchStatus) -> None:
        """更新批次状态"""
        sql = "UPDATE analysis_batches SET status = %s WHERE id = %s"
        self._execute_write(sql, (BatchStatus(status).value, batch_id), "更新批次状态失败")

    def mark_batch_failed(self, batch_id: int, reason: str) -> None:
        """标记批次失败并记录原因"""
        sql = "UPDATE analysis_batches SET status = %s, reason = %s WHERE id = %s"
        self._execute_write(sql, (BatchStatus.FAILED.value, reason, batch_id), "标记批次失败出错")

    def fetch_recent_batches(self, limit: int = 50) -> List[Batch]:
        """获取最近的批次"""
        sql = """
            SELECT b.id, b.batch_start_ts, b.batch_end_ts, b.status, b.reason, b.created_at,
                   GROUP_CONCAT(bc.chunk_id ORDER BY bc.chunk_id) AS chunk_ids
            FROM analysis_batches b
            LEFT JOIN batch_chunks bc ON bc.batch_id = b.id
            GROUP BY b.id, b.batch_start_ts, b.batch_end_ts, b.status, b.reason, b.created_at
            ORDER BY b.id DESC
            LIMIT %s
        """
        rows = self._fetch_all(sql, (limit,), "查询批次失败")
        batches = []
        for row in rows:
            chunk_ids = [int(x) for x in row['chunk_ids'].split(',')] if row.get('chunk_ids') else []
            batches.append(Batch(
                batch_id=row['id'],
                start_ts=float(row['batch_start_ts']),
                end_ts=float(row['batch_end_ts']),
                chunk_ids=chunk_ids,
                status=BatchStatus(row['status']),
                reason=row.get('reason'),
                created_at=row.get('created_at')
            ))
        return batches

    # ---------------------------------------------------------------- 时间线卡片

    def delete_timeline_cards(self, day: str) -> List[str]:
        """删除某天的全部卡片，返回其引用的摘要视频路径"""
        with self._lock:
            self._ensure_connected()
            try:
                with self.connection.cursor() as cursor:
                    cursor.execute(
                        "SELECT video_summary_path, metadata FROM timeline_cards WHERE day = %s",
                        (day,)
                    )
                    rows = cursor.fetchall()
                    cursor.execute("DELETE FROM timeline_cards WHERE day = %s", (day,))
                self.connection.commit()
            except Exception as e:
                self.connection.rollback()
                raise RuntimeError(f"删除时间线卡片失败: {e}")

        paths = []
        for row in rows:
            if row.get('video_summary_path'):
                paths.append(row['video_summary_path'])
            for dist in self._load_distractions(row.get('metadata')):
                if dist.video_summary_path:
                    paths.append(dist.video_summary_path)
        return paths

    def save_timeline_cards(self, batch_id: int, cards: List[TimelineCard]) -> List[int]:
        """保存时间线卡片（同一事务）"""
        if not cards:
            return []

        sql = """
            INSERT INTO timeline_cards (batch_id, start_ts, end_ts, day, title, summary,
                                        category, subcategory, detailed_summary, metadata,
                                        video_summary_path)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        card_ids = []
        with self._lock:
            self._ensure_connected()
            try:
                with self.connection.cursor() as cursor:
                    for card in cards:
                        metadata = json.dumps(
                            {"distractions": [self._distraction_to_dict(d) for d in card.distractions]},
                            ensure_ascii=False
                        )
                        cursor.execute(
                            sql,
                            (
                                batch_id,
                                card.start_ts,
                                card.end_ts,
                                card.day,
                                card.title,
                                card.summary,
                                card.category,
                                card.subcategory,
                                card.detailed_summary,
                                metadata,
                                card.video_summary_path
                            )
                        )
                        card_ids.append(cursor.lastrowid)
                self.connection.commit()
            except Exception as e:
                self.connection.rollback()
                raise RuntimeError(f"保存时间线卡片失败: {e}")

        for card, card_id in zip(cards, card_ids):
            card.card_id = card_id
        return card_ids

    def fetch_timeline_cards(self, day: str) -> List[TimelineCard]:
        """获取某天的卡片"""
        sql = """
            SELECT id, batch_id, start_ts, end_ts, day, title, summary, category,
                   subcategory, detailed_summary, metadata, video_summary_path
            FROM timeline_cards
            WHERE day = %s
            ORDER BY start_ts ASC
        """
        rows = self._fetch_all(sql, (day,), "查询时间线卡片失败")
        return [
            TimelineCard(
                card_id=row['id'],
                batch_id=row['batch_id'],
                start_ts=float(row['start_ts']),
                end_ts=float(row['end_ts']),
                day=str(row['day']),
                title=row['title'],
                summary=row.get('summary') or "",
                category=row['category'],
                subcategory=row.get('subcategory') or "",
                detailed_summary=row.get('detailed_summary') or "",
                distractions=self._load_distractions(row.get('metadata')),
                video_summary_path=row.get('video_summary_path')
            )
            for row in rows
        ]

    @staticmethod
    def _distraction_to_dict(dist: TimelineDistraction) -> Dict[str, Any]:
        return {
            "start_ts": dist.start_ts,
            "end_ts": dist.end_ts,
            "title": dist.title,
            "summary": dist.summary,
            "video_summary_path": dist.video_summary_path,
        }

    @staticmethod
    def _load_distractions(metadata: Any) -> List[TimelineDistraction]:
        if not metadata:
            return []
        data = json.loads(metadata) if isinstance(metadata, (str, bytes)) else metadata
        return [
            TimelineDistraction(
                start_ts=float(d['start_ts']),
                end_ts=float(d['end_ts']),
                title=d.get('title', ''),
                summary=d.get('summary', ''),
                video_summary_path=d.get('video_summary_path')
            )
            for d in data.get('distractions', [])
        ]

    # ---------------------------------------------------------------- LLM 调用

    def insert_llm_call(self, record: LLMCallRecord) -> None:
        """插入 LLM 调用记录"""
        sql = """
            INSERT INTO llm_calls (batch_id, call_group_id, attempt, provider, model, operation,
                                   status, latency_ms, http_status, request_method, request_url,
                                   request_headers, request_body, response_headers, response_body,
                                   error_domain, error_code, error_message)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        self._execute_write(
            sql,
            (
                record.batch_id,
                record.call_group_id,
                record.attempt,
                record.provider,
                record.model,
                record.operation,
                record.status,
                record.latency_ms,
                record.http_status,
                record.request_method,
                record.request_url,
                json.dumps(record.request_headers, ensure_ascii=False) if record.request_headers is not None else None,
                record.request_body,
                json.dumps(record.response_headers, ensure_ascii=False) if record.response_headers is not None else None,
                record.response_body,
                record.error_domain,
                record.error_code,
                record.error_message
            ),
            "插入 LLM 调用记录失败"
        )

    def close(self):
        """关闭连接"""
        if self.connection:
            self.connection.close()
            self.connection = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
