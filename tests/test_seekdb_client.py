"""Tests for the SeekDB chunk store against a mocked pymysql connection."""

import json
from unittest.mock import MagicMock

import pymysql
import pytest

from storage import seekdb_client
from storage.models import BatchStatus, ChunkStatus, TimelineCard, TimelineDistraction
from storage.seekdb_client import SeekDBClient


@pytest.fixture
def connection(monkeypatch):
    conn = MagicMock()
    cursor = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    conn.cursor_mock = cursor
    monkeypatch.setattr(seekdb_client.pymysql, "connect", MagicMock(return_value=conn))
    return conn


@pytest.fixture
def client(connection):
    return SeekDBClient()


def test_connection_failure(monkeypatch):
    monkeypatch.setattr(seekdb_client.pymysql, "connect", MagicMock(side_effect=pymysql.OperationalError("refused")))
    with pytest.raises(ConnectionError):
        SeekDBClient()


def test_register_chunk_returns_id(client, connection):
    connection.cursor_mock.lastrowid = 42

    assert client.register_chunk("/rec/a.mp4", 1000.0) == 42
    sql, params = connection.cursor_mock.execute.call_args[0]
    assert "INSERT INTO chunks" in sql
    assert params == ("/rec/a.mp4", 1000.0, 1000.0, ChunkStatus.PENDING.value)
    connection.commit.assert_called_once()


def test_write_failure_rolls_back(client, connection):
    connection.cursor_mock.execute.side_effect = pymysql.OperationalError("gone away")

    with pytest.raises(RuntimeError, match="更新分块状态失败"):
        client.mark_chunk_failed("/rec/a.mp4")
    connection.rollback.assert_called_once()


def test_fetch_unprocessed_chunks(client, connection):
    connection.cursor_mock.fetchall.return_value = [
        {"id": 1, "file_path": "/rec/a.mp4", "start_ts": 10.0, "end_ts": 25.0, "status": "completed"},
    ]

    chunks = client.fetch_unprocessed_chunks(0.0)

    assert chunks[0].chunk_id == 1
    assert chunks[0].duration == 15.0
    assert chunks[0].status == ChunkStatus.COMPLETED
    assert chunks[0].batch_id is None


def test_save_batch_in_one_transaction(client, connection):
    connection.cursor_mock.lastrowid = 7

    assert client.save_batch(10.0, 40.0, [1, 2]) == 7
    rows = connection.cursor_mock.executemany.call_args[0][1]
    assert rows == [(7, 1), (7, 2)]
    connection.commit.assert_called_once()


def test_save_batch_with_claimed_chunk_returns_none(client, connection):
    connection.cursor_mock.executemany.side_effect = pymysql.IntegrityError(1062, "Duplicate entry")

    assert client.save_batch(10.0, 40.0, [1, 2]) is None
    connection.rollback.assert_called_once()
    connection.commit.assert_not_called()


def test_save_empty_batch(client, connection):
    assert client.save_batch(0, 0, []) is None
    connection.cursor_mock.execute.assert_not_called()


def test_fetch_recent_batches(client, connection):
    connection.cursor_mock.fetchall.return_value = [
        {"id": 2, "batch_start_ts": 0, "batch_end_ts": 900, "status": "failed", "reason": "boom",
         "created_at": None, "chunk_ids": "3,4"},
        {"id": 1, "batch_start_ts": 0, "batch_end_ts": 0, "status": "failed_empty", "reason": None,
         "created_at": None, "chunk_ids": None},
    ]

    batches = client.fetch_recent_batches(10)

    assert batches[0].chunk_ids == [3, 4]
    assert batches[0].status == BatchStatus.FAILED
    assert batches[1].chunk_ids == []


def test_delete_timeline_cards_returns_summary_paths(client, connection):
    metadata = json.dumps({"distractions": [
        {"start_ts": 1, "end_ts": 2, "title": "d", "summary": "", "video_summary_path": "/s/dist.mp4"},
        {"start_ts": 3, "end_ts": 4, "title": "e", "summary": "", "video_summary_path": None},
    ]})
    connection.cursor_mock.fetchall.return_value = [
        {"video_summary_path": "/s/card.mp4", "metadata": metadata},
        {"video_summary_path": None, "metadata": None},
    ]

    assert client.delete_timeline_cards("2025-03-10") == ["/s/card.mp4", "/s/dist.mp4"]
    connection.commit.assert_called_once()


def test_save_timeline_cards_stores_distractions_in_metadata(client, connection):
    connection.cursor_mock.lastrowid = 11
    card = TimelineCard(batch_id=3, start_ts=0, end_ts=60, day="2025-03-10", title="t", category="Work",
                        distractions=[TimelineDistraction(10, 20, "Chat", "reply", "/s/d.mp4")])

    assert client.save_timeline_cards(3, [card]) == [11]
    assert card.card_id == 11
    params = connection.cursor_mock.execute.call_args[0][1]
    stored = json.loads(params[9])
    assert stored["distractions"][0]["video_summary_path"] == "/s/d.mp4"


def test_fetch_timeline_cards_round_trips_metadata(client, connection):
    connection.cursor_mock.fetchall.return_value = [{
        "id": 5, "batch_id": 3, "start_ts": 0, "end_ts": 60, "day": "2025-03-10", "title": "t",
        "summary": None, "category": "Work", "subcategory": None, "detailed_summary": None,
        "metadata": json.dumps({"distractions": [{"start_ts": 10, "end_ts": 20, "title": "Chat"}]}),
        "video_summary_path": None,
    }]

    card = client.fetch_timeline_cards("2025-03-10")[0]

    assert card.card_id == 5
    assert card.summary == ""
    assert card.distractions[0].title == "Chat"
    assert card.distractions[0].video_summary_path is None


def test_close(client, connection):
    client.close()
    connection.close.assert_called_once()
    assert client.connection is None
