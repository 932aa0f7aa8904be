"""Delivery state machine shared by all backends (exercised with a scripted transport)."""

import logging
import threading
from dataclasses import dataclass, field

import pytest
from excimetry.backends.base import Backend, RetryPolicy
from excimetry.errors import ConfigurationError
from excimetry.export.collapsed import CollapsedExporter
from excimetry.ingestion.parser import Profile

PROFILE = Profile("main;A 1\n")


@dataclass(frozen=True, kw_only=True, eq=False)
class ScriptedBackend(Backend):
    # each entry: True / False result, or an exception instance to raise
    script: list = field(default_factory=list)
    calls: list = field(default_factory=list)

    name = 'scripted'

    def _do_send(self, profile, payload):
        self.calls.append(payload)
        step = self.script[len(self.calls) - 1] if len(self.calls) <= len(self.script) else False
        if isinstance(step, Exception):
            raise step
        return step


def _backend(script, retries=3, delay=0, **kw):
    sleeps = []
    b = ScriptedBackend(
        exporter=CollapsedExporter(),
        retry=RetryPolicy(max_retries=retries, retry_delay_ms=delay),
        sleep=sleeps.append,
        script=script,
        **kw,
    )
    return b, sleeps


def test_success_first_attempt():
    b, sleeps = _backend([True])
    outcome = b.send_with_outcome(PROFILE)
    assert outcome.success and outcome.attempts == 1
    assert b.calls == [b"main;A 1\n"]
    assert sleeps == []


@pytest.mark.parametrize('retries', [0, 1, 3, 5])
def test_attempts_capped_at_retries_plus_one(retries):
    b, sleeps = _backend([], retries=retries, delay=250)
    outcome = b.send_with_outcome(PROFILE)
    assert not outcome
    assert outcome.attempts == retries + 1
    assert len(b.calls) == retries + 1
    assert sleeps == [0.25] * retries


def test_success_on_third_attempt():
    b, sleeps = _backend([False, RuntimeError('boom'), True], delay=10)
    assert b.send(PROFILE) is True
    assert len(b.calls) == 3
    assert sleeps == [0.01, 0.01]


def test_exception_counts_as_failed_attempt(caplog):
    b, _ = _backend([ConnectionError('refused')], retries=0)
    with caplog.at_level(logging.WARNING, logger='excimetry'):
        assert b.send(PROFILE) is False
    assert 'ConnectionError' in caplog.text
    assert 'failed after 1 attempt' in caplog.text


def test_payload_exported_once_for_all_attempts():
    b, _ = _backend([False, False, True])
    b.send(PROFILE)
    assert len(b.calls) == 3
    assert all(c is b.calls[0] for c in b.calls)


def test_default_policy():
    policy = RetryPolicy()
    assert policy.max_retries == 3
    assert policy.retry_delay_ms == 1000
    assert policy.max_attempts == 4


@pytest.mark.parametrize('kwargs', [{'max_retries': -1}, {'retry_delay_ms': -5}])
def test_negative_policy_rejected(kwargs):
    with pytest.raises(ConfigurationError):
        RetryPolicy(**kwargs)


def test_with_helpers_return_copies():
    b, _ = _backend([True])
    b2 = b.with_retry_policy(7, 20)
    assert b2 is not b
    assert b2.retry == RetryPolicy(max_retries=7, retry_delay_ms=20)
    assert b.retry.max_retries == 3
    b3 = b.with_async(True)
    assert b3.async_send and not b.async_send
    with pytest.raises(ValueError):
        b.with_retry_policy(-1, 0)


def test_async_returns_before_transport_completes():
    release = threading.Event()
    done = threading.Event()

    @dataclass(frozen=True, kw_only=True, eq=False)
    class SlowBackend(Backend):
        def _do_send(self, profile, payload):
            release.wait(5)
            done.set()
            return True

    b = SlowBackend(exporter=CollapsedExporter(), async_send=True)
    assert b.send(PROFILE) is True
    assert not done.is_set()
    release.set()
    assert done.wait(5)


def test_async_failure_is_logged_once():
    logged = threading.Event()
    records = []

    class Capture(logging.Handler):
        def emit(self, record):
            records.append(record.getMessage())
            logged.set()

    log = logging.getLogger('excimetry.test.async')
    log.propagate = False
    log.addHandler(Capture())
    b, _ = _backend([], retries=3, async_send=True, logger=log)
    assert b.send(PROFILE) is True
    assert logged.wait(5)
    assert any('async send failed' in r for r in records)
    # no retries in async mode
    assert len(b.calls) == 1


def test_async_thread_outlives_caller_as_non_daemon():
    release = threading.Event()

    @dataclass(frozen=True, kw_only=True, eq=False)
    class HeldBackend(Backend):
        name = 'held'

        def _do_send(self, profile, payload):
            release.wait(5)
            return True

    b = HeldBackend(exporter=CollapsedExporter(), async_send=True)
    assert b.send(PROFILE) is True
    try:
        workers = [t for t in threading.enumerate() if t.name == 'excimetry-held-send']
        assert len(workers) == 1
        assert workers[0].daemon is False
    finally:
        release.set()
    workers[0].join(5)
    assert not workers[0].is_alive()
