from __future__ import annotations
import dataclasses
import time
import urllib.parse
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from ..export.collapsed import CollapsedExporter
from ..export.registry import Exporter
from ..ingestion.parser import Profile
from .http import HttpBackend

INGEST_PATH = '/ingest'


def label_string(labels: Mapping[str, object]) -> str:
    """``{'env': 'prod', 'region': 'eu'}`` -> ``env=prod,region=eu``"""
    return ','.join(f'{k}={v}' for k, v in labels.items())


@dataclass(frozen=True, kw_only=True, eq=False)
class PyroscopeBackend(HttpBackend):
    """Push collapsed stacks to a Pyroscope server's ``/ingest`` endpoint."""
    server_url: str
    app_name: str
    labels: Mapping[str, str] = field(default_factory=dict)
    exporter: Optional[Exporter] = None
    url: str = field(init=False, default='')

    name = 'pyroscope'

    def __post_init__(self):
        super().__post_init__()
        object.__setattr__(self, 'labels', dict(self.labels))
        object.__setattr__(self, 'url', self.server_url.rstrip('/') + INGEST_PATH)
        if self.exporter is None:
            object.__setattr__(self, 'exporter', CollapsedExporter())

    def with_url(self, url: str) -> "PyroscopeBackend":
        if url.rstrip('/').endswith(INGEST_PATH):
            url = url.rstrip('/')[:-len(INGEST_PATH)]
        return dataclasses.replace(self, server_url=url)

    def with_app_name(self, app_name: str) -> "PyroscopeBackend":
        return dataclasses.replace(self, app_name=app_name)

    def with_labels(self, labels: Mapping[str, str]) -> "PyroscopeBackend":
        return dataclasses.replace(self, labels=labels)

    def with_label(self, key: str, value: str) -> "PyroscopeBackend":
        labels = dict(self.labels)
        labels[key] = value
        return dataclasses.replace(self, labels=labels)

    def query_params(self, profile: Profile, now: Optional[int] = None) -> Dict[str, str]:
        now = int(time.time()) if now is None else now
        ts = profile.metadata.get('timestamp')
        start = int(ts) if isinstance(ts, (int, float)) and not isinstance(ts, bool) else now
        params = {'name': self.app_name, 'from': str(start), 'until': str(now)}
        if self.labels:
            params['labels'] = label_string(self.labels)
        return params

    def request_url(self, profile: Profile) -> str:
        return self.url + '?' + urllib.parse.urlencode(self.query_params(profile))


__all__ = ["PyroscopeBackend", "label_string", "INGEST_PATH"]
