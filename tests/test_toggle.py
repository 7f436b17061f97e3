"""Tests for the recording toggle."""

import threading

from capture.toggle import RecordingToggle


def test_set_notifies_only_on_change():
    toggle = RecordingToggle(False)
    seen = []
    toggle.subscribe(seen.append)

    assert toggle.set(True) is True
    assert toggle.set(True) is False
    assert toggle.set(False) is True

    assert seen == [True, False]
    assert toggle.value is False


def test_unsubscribe_stops_notifications():
    toggle = RecordingToggle()
    seen = []
    unsubscribe = toggle.subscribe(seen.append)
    toggle.set(True)
    unsubscribe()
    unsubscribe()
    toggle.set(False)
    assert seen == [True]


def test_failing_subscriber_does_not_block_others():
    toggle = RecordingToggle()
    seen = []

    def broken(value):
        raise RuntimeError("subscriber failed")

    toggle.subscribe(broken)
    toggle.subscribe(seen.append)
    assert toggle.set(True) is True
    assert seen == [True]


def test_concurrent_sets_notify_each_change_once():
    toggle = RecordingToggle(False)
    seen = []
    lock = threading.Lock()

    def record(value):
        with lock:
            seen.append(value)

    toggle.subscribe(record)
    threads = [threading.Thread(target=toggle.set, args=(True,)) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert seen == [True]
