"""
Shared pytest fixtures for the screen journal test suite.

Provides an in-memory chunk store, a scripted capture source, a fake chunk
writer, a fake analysis service and a file-only transformer so the pipeline
can be exercised without a database, a display, ffmpeg or network access.
"""

import asyncio
import shutil
import sys
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from capture.interface import CaptureSession, CaptureSource, Frame
from orchestration.monitoring import MonitoringLogger
from storage.interface import ChunkStore
from storage.models import (
    ActivityCard,
    Batch,
    BatchStatus,
    ChunkStatus,
    LLMCallRecord,
    RecordingChunk,
    TimelineCard,
)
from transform.ffmpeg_tools import TransformError
from transform.transformer import VideoTransformer
from video_processing.interface import AnalysisError, AnalysisService

HAS_FFMPEG = shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None
requires_ffmpeg = pytest.mark.skipif(not HAS_FFMPEG, reason="ffmpeg/ffprobe not on PATH")


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class InMemoryChunkStore(ChunkStore):
    """Thread-safe ChunkStore backed by dicts."""

    def __init__(self):
        self._lock = threading.RLock()
        self.chunks: Dict[int, RecordingChunk] = {}
        self.batches: Dict[int, Batch] = {}
        self.batch_history: Dict[int, List[BatchStatus]] = {}
        self.cards: List[TimelineCard] = []
        self.llm_calls: List[LLMCallRecord] = []
        self._next_chunk_id = 1
        self._next_batch_id = 1
        self._next_card_id = 1

    # helpers for tests
    def add_completed_chunk(self, start_ts: float, duration: float = 15.0, file_path: Optional[str] = None) -> RecordingChunk:
        with self._lock:
            chunk_id = self._next_chunk_id
            self._next_chunk_id += 1
            chunk = RecordingChunk(
                chunk_id=chunk_id,
                file_path=file_path or f"/tmp/chunk_{chunk_id}.mp4",
                start_ts=start_ts,
                end_ts=start_ts + duration,
                status=ChunkStatus.COMPLETED
            )
            self.chunks[chunk_id] = chunk
            return chunk

    def chunks_with_status(self, status: ChunkStatus) -> List[RecordingChunk]:
        with self._lock:
            return [c for c in self.chunks.values() if c.status == status]

    def _chunk_by_path(self, file_path: str) -> RecordingChunk:
        for chunk in self.chunks.values():
            if chunk.file_path == file_path:
                return chunk
        raise RuntimeError(f"unknown chunk {file_path}")

    # ChunkStore
    def register_chunk(self, file_path, start_ts):
        with self._lock:
            chunk_id = self._next_chunk_id
            self._next_chunk_id += 1
            self.chunks[chunk_id] = RecordingChunk(chunk_id, file_path, start_ts, start_ts)
            return chunk_id

    def mark_chunk_completed(self, file_path, end_ts=None):
        with self._lock:
            chunk = self._chunk_by_path(file_path)
            chunk.status = ChunkStatus.COMPLETED
            chunk.end_ts = end_ts if end_ts is not None else time.time()

    def mark_chunk_failed(self, file_path):
        with self._lock:
            self._chunk_by_path(file_path).status = ChunkStatus.FAILED

    def fetch_unprocessed_chunks(self, older_than):
        with self._lock:
            return sorted(
                (
                    c for c in self.chunks.values()
                    if c.status == ChunkStatus.COMPLETED and c.batch_id is None and c.start_ts >= older_than
                ),
                key=lambda c: c.start_ts
            )

    def save_batch(self, start_ts, end_ts, chunk_ids):
        with self._lock:
            if not chunk_ids or any(self.chunks[i].batch_id is not None for i in chunk_ids):
                return None
            batch_id = self._next_batch_id
            self._next_batch_id += 1
            self.batches[batch_id] = Batch(batch_id, start_ts, end_ts, list(chunk_ids))
            self.batch_history[batch_id] = []
            for chunk_id in chunk_ids:
                self.chunks[chunk_id].batch_id = batch_id
            return batch_id

    def update_batch_status(self, batch_id, status):
        with self._lock:
            self.batches[batch_id].status = BatchStatus(status)
            self.batch_history[batch_id].append(BatchStatus(status))

    def mark_batch_failed(self, batch_id, reason):
        with self._lock:
            self.batches[batch_id].status = BatchStatus.FAILED
            self.batches[batch_id].reason = reason
            self.batch_history[batch_id].append(BatchStatus.FAILED)

    def chunks_for_batch(self, batch_id):
        with self._lock:
            batch = self.batches.get(batch_id)
            if batch is None:
                return []
            return sorted((self.chunks[i] for i in batch.chunk_ids if i in self.chunks), key=lambda c: c.start_ts)

    def delete_timeline_cards(self, day):
        with self._lock:
            removed = [c for c in self.cards if c.day == day]
            self.cards = [c for c in self.cards if c.day != day]
            paths = []
            for card in removed:
                if card.video_summary_path:
                    paths.append(card.video_summary_path)
                paths.extend(d.video_summary_path for d in card.distractions if d.video_summary_path)
            return paths

    def save_timeline_cards(self, batch_id, cards):
        with self._lock:
            ids = []
            for card in cards:
                card.card_id = self._next_card_id
                self._next_card_id += 1
                self.cards.append(card)
                ids.append(card.card_id)
            return ids

    def insert_llm_call(self, record):
        with self._lock:
            self.llm_calls.append(record)

    def fetch_timeline_cards(self, day):
        with self._lock:
            return sorted((c for c in self.cards if c.day == day), key=lambda c: c.start_ts)

    def fetch_recent_batches(self, limit=50):
        with self._lock:
            return sorted(self.batches.values(), key=lambda b: b.batch_id, reverse=True)[:limit]


@pytest.fixture
def store():
    return InMemoryChunkStore()


@pytest.fixture
def monitor(tmp_path):
    return MonitoringLogger(tmp_path / "logs" / "batch_stats.jsonl")


# ---------------------------------------------------------------------------
# Capture
# ---------------------------------------------------------------------------

class ScriptedSession(CaptureSession):
    """Emits tiny frames; optionally raises after a number of frames."""

    def __init__(self, frame_interval: float = 0.01, fail_after: Optional[int] = None, error: Optional[Exception] = None):
        self.source_width = 4
        self.source_height = 2
        self.output_width = 4
        self.output_height = 2
        self.frame_interval = frame_interval
        self.fail_after = fail_after
        self.error = error
        self.frames = 0
        self.closed = False

    def next_frame(self) -> Frame:
        time.sleep(self.frame_interval)
        if self.fail_after is not None and self.frames >= self.fail_after:
            raise self.error
        self.frames += 1
        return Frame(data=b"\x00" * (self.source_width * self.source_height * 4),
                     width=self.source_width, height=self.source_height, timestamp=time.time())

    def close(self):
        self.closed = True


class ScriptedCaptureSource(CaptureSource):
    """
    open_session() consumes the script in order: an exception instance is raised,
    a ScriptedSession is returned as is. When the script runs out a fresh
    ScriptedSession is returned.
    """

    def __init__(self, script=None, frame_interval: float = 0.01):
        self.script = list(script or [])
        self.frame_interval = frame_interval
        self.open_calls = 0
        self.sessions: List[ScriptedSession] = []
        self._lock = threading.Lock()

    def open_session(self, fps, target_height):
        with self._lock:
            self.open_calls += 1
            item = self.script.pop(0) if self.script else None
        if isinstance(item, Exception):
            raise item
        session = item or ScriptedSession(self.frame_interval)
        self.sessions.append(session)
        return session


class FakeChunkWriter:
    """Stands in for ChunkWriter; writes a small file on finish()."""

    instances: List["FakeChunkWriter"] = []

    def __init__(self, file_path, source_width, source_height, output_width, output_height, fps):
        self.file_path = Path(file_path)
        self.frames_written = 0
        self.started = False
        self.finished = False
        self.aborted = False
        FakeChunkWriter.instances.append(self)

    def start(self):
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        self.file_path.write_bytes(b"")
        self.started = True

    def write_frame(self, data: bytes):
        self.frames_written += 1

    def finish(self) -> bool:
        self.finished = True
        self.file_path.write_bytes(b"x" * max(1, self.frames_written))
        return True

    def abort(self):
        self.aborted = True
        self.file_path.unlink(missing_ok=True)


@pytest.fixture
def writer_factory():
    FakeChunkWriter.instances = []
    yield FakeChunkWriter
    FakeChunkWriter.instances = []


async def wait_for(predicate, timeout: float = 3.0, interval: float = 0.01) -> bool:
    """Poll predicate on the running loop until it holds or timeout elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


# ---------------------------------------------------------------------------
# Analysis / transform
# ---------------------------------------------------------------------------

class FakeAnalysisService(AnalysisService):
    def __init__(self, cards: Optional[List[ActivityCard]] = None, error: Optional[Exception] = None):
        self.cards = cards or []
        self.error = error
        self.calls: List[int] = []

    async def analyze(self, batch_id, chunks):
        self.calls.append(batch_id)
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return list(self.cards)


class FileOnlyTransformer(VideoTransformer):
    """VideoTransformer that writes placeholder files instead of running ffmpeg."""

    def __init__(self, tmp_path: Path, fail_summaries: bool = False, fail_stitch: bool = False):
        super().__init__(temp_dir=tmp_path / "tmp", summaries_root=tmp_path / "summaries", output_fps=2)
        self.fail_summaries = fail_summaries
        self.fail_stitch = fail_stitch
        self.extracted: List[tuple] = []
        self.summaries: List[tuple] = []

    async def stitch(self, video_files, output_path=None):
        if self.fail_stitch:
            raise TransformError("stitch failed")
        output = Path(output_path) if output_path else self.temp_path("stitched")
        output.write_bytes(b"stitched")
        return output

    async def probe_duration(self, video_path):
        return 3600.0

    async def extract_segment(self, source, start, duration, output_path=None):
        self.extracted.append((start, duration))
        output = Path(output_path) if output_path else self.temp_path("segment")
        output.write_bytes(b"segment")
        return output

    async def generate_summary(self, source, pick_interval, output_path):
        self.summaries.append((Path(output_path).name, pick_interval))
        if self.fail_summaries:
            raise TransformError("summary failed")
        Path(output_path).write_bytes(b"summary")
        return Path(output_path)


@pytest.fixture
def transformer(tmp_path):
    return FileOnlyTransformer(tmp_path)
