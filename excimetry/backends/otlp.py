from __future__ import annotations
import dataclasses
from dataclasses import dataclass, field
from typing import Optional

from ..export.otlp import Encoding, OTLPExporter
from ..export.registry import Exporter
from ..ingestion.parser import Profile
from .http import HttpBackend

TRACES_PATH = '/v1/traces'


@dataclass(frozen=True, kw_only=True, eq=False)
class OTLPBackend(HttpBackend):
    """Send profiles to an OpenTelemetry collector at ``<collector_url>/v1/traces``.

    The service name and encoding are mirrored into the default OTLPExporter
    and the ``Accept`` header follows the exporter's content type. Trace and
    span ids set here are added to the profile metadata at send time.
    """
    collector_url: str
    service_name: str = 'python-application'
    encoding: Encoding = Encoding.JSON
    trace_id: Optional[str] = None
    span_id: Optional[str] = None
    exporter: Optional[Exporter] = None
    url: str = field(init=False, default='')

    name = 'otlp'

    def __post_init__(self):
        super().__post_init__()
        object.__setattr__(self, 'encoding', Encoding.parse(self.encoding))
        object.__setattr__(self, 'url', self.collector_url.rstrip('/') + TRACES_PATH)
        if self.exporter is None:
            object.__setattr__(self, 'exporter', OTLPExporter(self.service_name, self.encoding))
        self.headers['Accept'] = self.exporter.content_type

    def with_url(self, url: str) -> "OTLPBackend":
        """Accepts the collector base or the full ``/v1/traces`` URL."""
        if url.rstrip('/').endswith(TRACES_PATH):
            url = url.rstrip('/')[:-len(TRACES_PATH)]
        return dataclasses.replace(self, collector_url=url)

    def with_service_name(self, service_name: str) -> "OTLPBackend":
        exporter = self.exporter
        if isinstance(exporter, OTLPExporter):
            exporter = dataclasses.replace(exporter, service_name=service_name)
        return dataclasses.replace(self, service_name=service_name, exporter=exporter)

    def with_encoding(self, encoding: "Encoding | str") -> "OTLPBackend":
        encoding = Encoding.parse(encoding)
        exporter = self.exporter
        if isinstance(exporter, OTLPExporter):
            exporter = dataclasses.replace(exporter, encoding=encoding)
        return dataclasses.replace(self, encoding=encoding, exporter=exporter)

    def with_trace_id(self, trace_id: str) -> "OTLPBackend":
        return dataclasses.replace(self, trace_id=trace_id)

    def with_span_id(self, span_id: str) -> "OTLPBackend":
        return dataclasses.replace(self, span_id=span_id)

    def _prepare(self, profile: Profile) -> Profile:
        ids = {}
        if self.trace_id:
            ids['trace_id'] = self.trace_id
        if self.span_id:
            ids['span_id'] = self.span_id
        return profile.with_metadata(**ids) if ids else profile


__all__ = ["OTLPBackend", "TRACES_PATH"]
