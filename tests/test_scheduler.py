"""Tests for the periodic batch scheduler."""

import asyncio
import threading
import time

from conftest import InMemoryChunkStore
from orchestration.scheduler import BatchScheduler


class RecordingDispatcher:
    def __init__(self):
        self.dispatched = []

    def dispatch(self, batch_id):
        self.dispatched.append(batch_id)


def add_run(store, start, count, duration=15.0):
    return [store.add_completed_chunk(start + i * duration, duration) for i in range(count)]


def make_scheduler(store, dispatcher, **kwargs):
    options = dict(check_interval=60, target_duration=900, max_gap=120, max_lookback=24 * 3600)
    options.update(kwargs)
    return BatchScheduler(store, dispatcher, **options)


class TestProcessRecordings:

    def test_creates_and_dispatches_closed_batches(self, store):
        now = time.time() - 3600
        add_run(store, now, 60)            # full 900 s batch
        add_run(store, now + 2000, 3)      # still accumulating
        dispatcher = RecordingDispatcher()
        scheduler = make_scheduler(store, dispatcher)

        batch_ids = asyncio.run(scheduler.process_recordings())

        assert len(batch_ids) == 1
        assert dispatcher.dispatched == batch_ids
        batch = store.batches[batch_ids[0]]
        assert len(batch.chunk_ids) == 60
        assert batch.start_ts == now
        assert batch.end_ts == now + 900

    def test_gap_closes_short_batch_when_followed_by_activity(self, store):
        now = time.time() - 3600
        add_run(store, now, 3)
        add_run(store, now + 200, 60)
        dispatcher = RecordingDispatcher()

        batch_ids = asyncio.run(make_scheduler(store, dispatcher).process_recordings())

        assert [len(store.batches[b].chunk_ids) for b in batch_ids] == [3, 60]

    def test_chunks_are_batched_only_once(self, store):
        now = time.time() - 3600
        add_run(store, now, 60)
        add_run(store, now + 5000, 60)
        dispatcher = RecordingDispatcher()
        scheduler = make_scheduler(store, dispatcher)

        first = asyncio.run(scheduler.process_recordings())
        second = asyncio.run(scheduler.process_recordings())

        assert len(first) == 2
        assert second == []
        owners = [c.batch_id for c in store.chunks.values()]
        assert None not in owners

    def test_old_chunks_outside_lookback_are_ignored(self, store):
        add_run(store, time.time() - 3 * 24 * 3600, 60)
        dispatcher = RecordingDispatcher()

        assert asyncio.run(make_scheduler(store, dispatcher).process_recordings()) == []
        assert dispatcher.dispatched == []

    def test_nothing_to_do(self, store):
        assert asyncio.run(make_scheduler(store, RecordingDispatcher()).process_recordings()) == []


class BlockingStore(InMemoryChunkStore):
    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()
        self.fetch_calls = 0

    def fetch_unprocessed_chunks(self, older_than):
        self.fetch_calls += 1
        self.entered.set()
        self.release.wait(2)
        return super().fetch_unprocessed_chunks(older_than)


class TestSingleFlight:

    def test_overlapping_run_is_skipped(self):
        store = BlockingStore()
        add_run(store, time.time() - 3600, 60)
        dispatcher = RecordingDispatcher()
        scheduler = make_scheduler(store, dispatcher)

        async def scenario():
            first = asyncio.create_task(scheduler.process_recordings())
            while not store.entered.is_set():
                await asyncio.sleep(0.01)
            second = await scheduler.process_recordings()
            store.release.set()
            return await first, second

        first, second = asyncio.run(scenario())
        assert len(first) == 1
        assert second == []
        assert store.fetch_calls == 1


class TestLifecycle:

    def test_start_runs_immediately_and_stop_cancels(self, store):
        add_run(store, time.time() - 3600, 60)
        dispatcher = RecordingDispatcher()
        scheduler = make_scheduler(store, dispatcher, check_interval=30)

        async def scenario():
            scheduler.start()
            assert scheduler.is_started
            for _ in range(200):
                if dispatcher.dispatched:
                    break
                await asyncio.sleep(0.01)
            await scheduler.stop()
            return scheduler.is_started

        assert asyncio.run(scenario()) is False
        assert len(dispatcher.dispatched) == 1

    def test_trigger_now(self, store):
        add_run(store, time.time() - 3600, 60)
        dispatcher = RecordingDispatcher()
        scheduler = make_scheduler(store, dispatcher)

        async def scenario():
            return await scheduler.trigger_now()

        assert len(asyncio.run(scenario())) == 1
