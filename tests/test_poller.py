import logging

from conftest import FakeResponse, FakeSession, index_body
from globefetch.models import DedupState
from globefetch.poller import Poller
from globefetch.sources.fixed import FixedUrlStrategy
from globefetch.sources.slider import TimestampIndexedStrategy, TimestampResolver, build_image_url
from globefetch.storage.artifacts import ArtifactStore
from globefetch.util.http import Fetcher

FIXED_URL = "https://fixed.example/latest/full_disk.jpg"


def image_url(ts: str) -> str:
    return build_image_url(ts, "meteosat-0deg", "full_disk", "geocolor")


def make_slider_poller(tmp_path, session, scheduler, events, archive=True):
    fetcher = Fetcher(session)
    resolver = TimestampResolver(fetcher)
    strategy = TimestampIndexedStrategy(resolver, poll_delay=60, retry_delay=30)
    store = ArtifactStore(tmp_path, archive=archive)
    poller = Poller(strategy, fetcher, store, DedupState(), events.append, scheduler)
    return poller, resolver


def make_fixed_poller(tmp_path, session, scheduler, events, interval=600, archive=True):
    fetcher = Fetcher(session)
    strategy = FixedUrlStrategy(FIXED_URL, interval)
    store = ArtifactStore(tmp_path, archive=archive)
    return Poller(strategy, fetcher, store, DedupState(), events.append, scheduler)


def test_repeated_timestamp_skips_image_fetch(tmp_path, scheduler, ready_events):
    session = FakeSession()
    poller, resolver = make_slider_poller(tmp_path, session, scheduler, ready_events)
    session.routes[resolver.index_url] = [
        FakeResponse(200, index_body(2024010100)),
        FakeResponse(200, index_body(2024010100)),
        FakeResponse(200, index_body(2024010106)),
    ]
    session.routes[image_url("2024010100")] = [FakeResponse(200, b"frame-00")]
    session.routes[image_url("2024010106")] = [FakeResponse(200, b"frame-06")]

    poller.arm()
    delays = [scheduler.run_next() for _ in range(3)]

    assert delays == [0.0, 60, 60]
    assert scheduler.delays == [60]
    image_calls = [url for url in session.calls if url != resolver.index_url]
    assert image_calls == [image_url("2024010100"), image_url("2024010106")]
    assert sorted(p.name for p in tmp_path.glob("globe_*")) == ["globe_2024010100.png", "globe_2024010106.png"]
    assert (tmp_path / "current.png").read_bytes() == b"frame-06"
    assert len(ready_events) == 2


def test_index_outage_uses_retry_delay(tmp_path, scheduler, ready_events, caplog):
    session = FakeSession()
    poller, resolver = make_slider_poller(tmp_path, session, scheduler, ready_events)
    session.routes[resolver.index_url] = [FakeResponse(503)]
    poller.dedup.last_timestamp_id = "2024010100"

    with caplog.at_level(logging.WARNING, logger="globefetch.poller"):
        poller.arm()
        scheduler.run_next()

    assert scheduler.delays == [30]
    assert poller.dedup.last_timestamp_id == "2024010100"
    assert ready_events == []
    assert any(rec.levelno == logging.WARNING and "503" in rec.getMessage() for rec in caplog.records)


def test_malformed_index_logs_error(tmp_path, scheduler, ready_events, caplog):
    session = FakeSession()
    poller, resolver = make_slider_poller(tmp_path, session, scheduler, ready_events)
    session.routes[resolver.index_url] = [FakeResponse(200, b"<html>")]

    with caplog.at_level(logging.ERROR, logger="globefetch.poller"):
        outcome = poller.run_cycle()

    assert outcome.delay == 30
    assert outcome.error
    assert any(rec.levelno == logging.ERROR for rec in caplog.records)


def test_image_failure_keeps_poll_period_and_canonical(tmp_path, scheduler, ready_events):
    session = FakeSession()
    poller, resolver = make_slider_poller(tmp_path, session, scheduler, ready_events)
    (tmp_path / "current.png").write_bytes(b"previous")
    session.routes[resolver.index_url] = [FakeResponse(200, index_body(2024010112))]
    session.routes[image_url("2024010112")] = [FakeResponse(404)]

    outcome = poller.run_cycle()

    assert outcome.delay == 60
    assert outcome.fetched and outcome.error
    assert (tmp_path / "current.png").read_bytes() == b"previous"
    assert ready_events == []
    assert poller.dedup.last_timestamp_id == "2024010112"


def test_identical_fixed_frames_archive_once(tmp_path, scheduler, ready_events):
    session = FakeSession({FIXED_URL: [FakeResponse(200, b"same-bytes")]})
    poller = make_fixed_poller(tmp_path, session, scheduler, ready_events)

    poller.arm()
    scheduler.run_next()
    (tmp_path / "current.jpg").write_bytes(b"stale")
    scheduler.run_next()

    assert session.calls_to(FIXED_URL) == 2
    assert all("?" in url for url in session.calls)
    assert len(list(tmp_path.glob("globe_*_local-clock.jpg"))) == 1
    assert (tmp_path / "current.jpg").read_bytes() == b"same-bytes"
    assert len(ready_events) == 2
    assert all(ref.split("?")[0].endswith("current.jpg") for ref in ready_events)


def test_fixed_failure_waits_for_regular_interval(tmp_path, scheduler, ready_events):
    session = FakeSession({FIXED_URL: [FakeResponse(500)]})
    poller = make_fixed_poller(tmp_path, session, scheduler, ready_events, interval=600)

    poller.arm()
    scheduler.run_next()

    assert scheduler.delays == [600]
    assert ready_events == []
    assert not (tmp_path / "current.jpg").exists()


def test_fixed_zero_interval_fetches_once(tmp_path, scheduler, ready_events):
    session = FakeSession({FIXED_URL: [FakeResponse(200, b"one-shot")]})
    poller = make_fixed_poller(tmp_path, session, scheduler, ready_events, interval=0)

    poller.arm()
    scheduler.run_next()

    assert scheduler.scheduled == []
    assert len(ready_events) == 1


def test_storage_failure_suppresses_ready_event(tmp_path, scheduler, ready_events, caplog):
    blocker = tmp_path / "images"
    blocker.write_text("file in the way")
    session = FakeSession({FIXED_URL: [FakeResponse(200, b"bytes")]})
    fetcher = Fetcher(session)
    poller = Poller(FixedUrlStrategy(FIXED_URL, 600), fetcher, ArtifactStore(blocker), DedupState(), ready_events.append, scheduler)

    with caplog.at_level(logging.ERROR, logger="globefetch.poller"):
        outcome = poller.run_cycle()

    assert outcome.error and outcome.delay == 600
    assert ready_events == []
    assert any(rec.levelno == logging.ERROR for rec in caplog.records)
