"""Lifecycle wrapper around an external sampling engine.

The engine does the actual stack walking; this module only drives it
(start / stop / reset / period) and turns its raw sample text into a Profile
stamped with session metadata.
"""
from __future__ import annotations
import platform
import sys
import time
from typing import Any, Dict, Mapping, Optional, Protocol, runtime_checkable

from .config import validate_mode
from .debug_util import dbg
from .ingestion.parser import Profile


@runtime_checkable
class SamplingEngine(Protocol):
    def set_period(self, seconds: float) -> None: ...
    def start(self) -> None: ...
    def stop(self) -> None: ...
    def get_raw_log(self) -> str: ...


class ExcimerProfiler:
    def __init__(self, engine: SamplingEngine, period: float = 0.01, mode: str = 'wall',
                 metadata: Optional[Mapping[str, Any]] = None):
        self.engine = engine
        self.period = period
        self.mode = validate_mode(mode)
        self.metadata: Dict[str, Any] = dict(metadata or {})
        self.running = False
        self.engine.set_period(period)

    def set_period(self, seconds: float) -> None:
        self.period = seconds
        self.engine.set_period(seconds)

    def set_mode(self, mode: str) -> None:
        self.mode = validate_mode(mode)

    def add_metadata(self, key: str, value: Any) -> None:
        self.metadata[key] = value

    def set_metadata(self, metadata: Mapping[str, Any]) -> None:
        self.metadata = dict(metadata)

    def start(self) -> None:
        self.engine.start()
        self.running = True
        dbg(f'profiler_start period={self.period} mode={self.mode}')

    def stop(self) -> None:
        if self.running:
            self.engine.stop()
            self.running = False
            dbg('profiler_stop')

    def reset(self) -> None:
        self.stop()
        reset = getattr(self.engine, 'reset', None)
        if callable(reset):
            reset()
        self.engine.set_period(self.period)

    def is_running(self) -> bool:
        return self.running

    def standard_metadata(self) -> Dict[str, Any]:
        return {
            'timestamp': int(time.time()),
            'period': self.period,
            'mode': self.mode,
            'python_version': platform.python_version(),
            'os': sys.platform,
        }

    def get_log(self) -> Profile:
        """Snapshot the engine's samples; user metadata overrides the standard keys."""
        metadata = self.standard_metadata()
        metadata.update(self.metadata)
        return Profile(self.engine.get_raw_log(), metadata)


__all__ = ["SamplingEngine", "ExcimerProfiler"]
