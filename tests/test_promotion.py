# tests/test_promotion.py

import threading
import time
from unittest.mock import patch

from nophish.core.promotion import PromotionWorker


def worker_threads(name):
    return [t for t in threading.enumerate() if t.name == name and t.is_alive()]


def test_concurrent_submits_start_one_worker(store):
    worker = PromotionWorker(store, name="promotion-single")
    start_thread = threading.Thread.start

    def slow_start(thread):
        if thread.name == "promotion-single":
            time.sleep(0.05)
        start_thread(thread)

    submitters = [
        threading.Thread(target=worker.submit, args=(f"scam{i}.com", "Phish.Sinking.Yachts"))
        for i in range(4)
    ]
    with patch.object(threading.Thread, "start", slow_start):
        for submitter in submitters:
            submitter.start()
        for submitter in submitters:
            submitter.join()

    assert len(worker_threads("promotion-single")) == 1

    worker.stop()
    assert worker_threads("promotion-single") == []
    assert len(worker.completed) == 4
    assert all(store.is_active_scam(f"scam{i}.com") for i in range(4))


def test_restart_after_stop(store):
    worker = PromotionWorker(store, name="promotion-restart")
    worker.submit("first.com", "Manual")
    worker.stop()

    worker.submit("second.com", "Manual")
    assert worker.drain(timeout=5)
    worker.stop()

    assert worker_threads("promotion-restart") == []
    assert store.is_active_scam("second.com")


def test_drain_times_out_while_busy(store):
    worker = PromotionWorker(store, name="promotion-busy")
    release = threading.Event()
    upsert = store.upsert_scam

    def blocked_upsert(*args, **kwargs):
        release.wait(5)
        return upsert(*args, **kwargs)

    with patch.object(store, "upsert_scam", side_effect=blocked_upsert):
        worker.submit("slow.com", "Manual")
        assert not worker.drain(timeout=0.05)

        release.set()
        assert worker.drain(timeout=5)

    worker.stop()
    assert store.is_active_scam("slow.com")
