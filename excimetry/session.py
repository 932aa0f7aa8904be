"""High level entry point: profile a block of work and ship the result.

    session = Excimetry(engine, ExcimetryConfig(export_format='collapsed'))
    session.start()
    ...
    session.stop()
    session.save()           # file under config.output_directory
    session.ship()           # backend selected by config.backend
"""
from __future__ import annotations
from typing import Optional

from .backends.base import Backend
from .backends.file import FileBackend
from .backends.registry import create_backend, exporter_for
from .config import ExcimetryConfig
from .errors import ProfilingStateError
from .export.registry import Exporter
from .ingestion.parser import Profile
from .profiler import ExcimerProfiler, SamplingEngine


class Excimetry:
    def __init__(self, engine: SamplingEngine, config: Optional[ExcimetryConfig] = None):
        self.config = config or ExcimetryConfig()
        self.profiler = ExcimerProfiler(
            engine,
            period=self.config.period,
            mode=self.config.mode,
            metadata=self.config.metadata,
        )
        self._log: Optional[Profile] = None

    def start(self) -> "Excimetry":
        self.profiler.start()
        return self

    def stop(self) -> "Excimetry":
        self.profiler.stop()
        self._log = self.profiler.get_log()
        return self

    def reset(self) -> "Excimetry":
        self.profiler.reset()
        self._log = None
        return self

    def is_running(self) -> bool:
        return self.profiler.is_running()

    def get_log(self) -> Profile:
        if self._log is None:
            raise ProfilingStateError('Profiling has not been stopped. Call stop() first.')
        return self._log

    def create_exporter(self) -> Exporter:
        return exporter_for(self.config)

    def export(self, exporter: Optional[Exporter] = None) -> bytes:
        return (exporter or self.create_exporter()).export(self.get_log())

    def save(self, filename: Optional[str] = None, exporter: Optional[Exporter] = None) -> bool:
        backend = FileBackend(
            exporter=exporter or self.create_exporter(),
            directory=self.config.output_directory,
            filename=filename,
            retry=self.config.retry_policy(),
        )
        return backend.send(self.get_log())

    def send(self, backend: Backend) -> bool:
        return backend.send(self.get_log())

    def ship(self, exporter: Optional[Exporter] = None) -> bool:
        """Send the log to the backend described by the configuration."""
        log = self.get_log()
        return create_backend(self.config, exporter=exporter).send(log)


__all__ = ["Excimetry"]
