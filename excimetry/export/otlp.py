"""Trace/metric (OTLP) exporter.

Each stack sample becomes one record named after its leaf frame, starting at
the profile timestamp and lasting ``count`` milliseconds, with the full stack
and the raw count as record attributes. Scalar profile metadata is attached
to the resource as ``excimetry.<key>`` string attributes next to the reserved
``service.name``.

Compatibility caveat: the two encodings do not carry the same shape.
  json      -> ExportTraceServiceRequest-like document (resourceSpans / spans)
  protobuf  -> ExportMetricsServiceRequest (resourceMetrics / one gauge per
               sample), serialized with the opentelemetry-proto classes
Consumers switching encodings must expect spans on one side and gauges on the
other.
"""
from __future__ import annotations
import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List

from opentelemetry.proto.collector.metrics.v1.metrics_service_pb2 import ExportMetricsServiceRequest
from opentelemetry.proto.common.v1.common_pb2 import AnyValue, InstrumentationScope, KeyValue
from opentelemetry.proto.metrics.v1.metrics_pb2 import Gauge, Metric, NumberDataPoint, ResourceMetrics, ScopeMetrics
from opentelemetry.proto.resource.v1.resource_pb2 import Resource

from ..errors import ConfigurationError
from ..ingestion.parser import Profile, MetadataValue, STACK_DELIMITER

SCOPE_NAME = 'excimetry'
SCOPE_VERSION = '1.0.0'
SERVICE_NAME_KEY = 'service.name'
METADATA_PREFIX = 'excimetry.'
STACK_ATTR = 'excimetry.stack_trace'
COUNT_ATTR = 'excimetry.sample_count'
NANOS_PER_SECOND = 1_000_000_000
NANOS_PER_SAMPLE = 1_000_000  # one sample tick is reported as 1ms


class Encoding(str, Enum):
    JSON = 'json'
    PROTOBUF = 'protobuf'

    @classmethod
    def parse(cls, value: "Encoding | str") -> "Encoding":
        try:
            return cls(value)
        except ValueError:
            raise ConfigurationError(
                f"Invalid format: {value}. Supported formats are 'json' and 'protobuf'."
            ) from None


def metadata_string(value: MetadataValue) -> str:
    """String form of a scalar metadata value (bools as true/false)."""
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


@dataclass(frozen=True)
class OTLPExporter:
    service_name: str = 'python-application'
    encoding: Encoding = Encoding.JSON

    def __post_init__(self):
        object.__setattr__(self, 'encoding', Encoding.parse(self.encoding))

    @property
    def content_type(self) -> str:
        return 'application/json' if self.encoding is Encoding.JSON else 'application/x-protobuf'

    @property
    def file_extension(self) -> str:
        return 'json' if self.encoding is Encoding.JSON else 'bin'

    def _start_nanos(self, profile: Profile) -> int:
        ts = profile.metadata.get('timestamp')
        if not isinstance(ts, (int, float)) or isinstance(ts, bool):
            ts = int(time.time())
        return int(ts * NANOS_PER_SECOND)

    def _resource_attributes(self, profile: Profile) -> List[tuple[str, str]]:
        attrs: List[tuple[str, str]] = [(SERVICE_NAME_KEY, self.service_name)]
        for key, value in profile.scalar_metadata().items():
            attrs.append((f'{METADATA_PREFIX}{key}', metadata_string(value)))
        return attrs

    # --- json: spans ---

    def document(self, profile: Profile) -> Dict[str, Any]:
        start = self._start_nanos(profile)
        spans = []
        for sample in profile.samples:
            spans.append({
                'name': sample.leaf,
                'startTimeUnixNano': start,
                'endTimeUnixNano': start + sample.count * NANOS_PER_SAMPLE,
                'attributes': [
                    {'key': STACK_ATTR, 'value': {'stringValue': STACK_DELIMITER.join(sample.frames)}},
                    {'key': COUNT_ATTR, 'value': {'intValue': sample.count}},
                ],
            })
        return {
            'resourceSpans': [{
                'resource': {
                    'attributes': [
                        {'key': k, 'value': {'stringValue': v}} for k, v in self._resource_attributes(profile)
                    ],
                },
                'scopeSpans': [{
                    'scope': {'name': SCOPE_NAME, 'version': SCOPE_VERSION},
                    'spans': spans,
                }],
            }],
        }

    # --- protobuf: gauges ---

    def metrics_request(self, profile: Profile) -> ExportMetricsServiceRequest:
        start = self._start_nanos(profile)
        metrics = []
        for sample in profile.samples:
            point = NumberDataPoint(
                start_time_unix_nano=start,
                time_unix_nano=start + sample.count * NANOS_PER_SAMPLE,
                as_int=sample.count,
                attributes=[
                    KeyValue(key=STACK_ATTR, value=AnyValue(string_value=STACK_DELIMITER.join(sample.frames))),
                    KeyValue(key=COUNT_ATTR, value=AnyValue(int_value=sample.count)),
                ],
            )
            metrics.append(Metric(name=sample.leaf, unit='samples', gauge=Gauge(data_points=[point])))
        resource = Resource(attributes=[
            KeyValue(key=k, value=AnyValue(string_value=v)) for k, v in self._resource_attributes(profile)
        ])
        return ExportMetricsServiceRequest(resource_metrics=[
            ResourceMetrics(
                resource=resource,
                scope_metrics=[ScopeMetrics(
                    scope=InstrumentationScope(name=SCOPE_NAME, version=SCOPE_VERSION),
                    metrics=metrics,
                )],
            ),
        ])

    def export(self, profile: Profile) -> bytes:
        if self.encoding is Encoding.JSON:
            return json.dumps(self.document(profile), indent=2).encode('utf-8')
        return self.metrics_request(profile).SerializeToString()


__all__ = ["OTLPExporter", "Encoding", "metadata_string", "SERVICE_NAME_KEY", "STACK_ATTR", "COUNT_ATTR"]
