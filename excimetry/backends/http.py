from __future__ import annotations
import dataclasses
import http.client
import urllib.parse
from dataclasses import dataclass, field
from typing import Dict, Mapping, Tuple

from ..debug_util import dbg
from ..ingestion.parser import Profile
from .base import Backend

DEFAULT_TIMEOUT = 30.0
PROBE_TIMEOUT = 5.0


def http_request(method: str, url: str, body: bytes | None = None,
                 headers: Mapping[str, str] | None = None, timeout: float = DEFAULT_TIMEOUT) -> Tuple[int, bytes]:
    """Issue one HTTP request and return (status, body).

    A fresh connection per call, closed on every exit path. Transport problems
    surface as OSError / http.client.HTTPException for the caller to handle.
    """
    parsed = urllib.parse.urlsplit(url)
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        raise ValueError(f'unsupported url: {url}')
    path = parsed.path or '/'
    if parsed.query:
        path += '?' + parsed.query
    conn_cls = http.client.HTTPSConnection if parsed.scheme == 'https' else http.client.HTTPConnection
    conn = conn_cls(parsed.netloc, timeout=timeout)
    dbg(f'http_request start method={method} url={url}')
    try:
        conn.request(method, path, body=body, headers=dict(headers or {}))
        resp = conn.getresponse()
        data = resp.read()
        dbg(f'http_request done method={method} status={resp.status} bytes={len(data)}')
        return resp.status, data
    finally:
        conn.close()


@dataclass(frozen=True, kw_only=True, eq=False)
class HttpBackend(Backend):
    """POST the exported bytes to ``url``; 2xx means delivered."""
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    timeout: float = DEFAULT_TIMEOUT

    name = 'http'

    def __post_init__(self):
        object.__setattr__(self, 'headers', dict(self.headers))

    def with_url(self, url: str):
        return dataclasses.replace(self, url=url)

    def with_headers(self, headers: Mapping[str, str]):
        return dataclasses.replace(self, headers=headers)

    def with_timeout(self, timeout: float):
        return dataclasses.replace(self, timeout=timeout)

    def request_url(self, profile: Profile) -> str:
        return self.url

    def request_headers(self) -> Dict[str, str]:
        headers = {'Content-Type': self.exporter.content_type}
        headers.update(self.headers)
        return headers

    def is_available(self) -> bool:
        try:
            http_request('HEAD', self.url, timeout=PROBE_TIMEOUT)
        except (OSError, ValueError, http.client.HTTPException) as e:
            dbg(f'{self.name}_probe_fail url={self.url} err={e.__class__.__name__}:{e}')
            return False
        return True

    def _do_send(self, profile: Profile, payload: bytes) -> bool:
        url = self.request_url(profile)
        status, body = http_request('POST', url, body=payload, headers=self.request_headers(), timeout=self.timeout)
        if status < 200 or status >= 300:
            self.logger.warning('%s request to %s failed with status code %d: %s',
                                self.name, url, status, body[:200].decode('utf-8', 'ignore'))
            return False
        return True


__all__ = ["HttpBackend", "http_request", "DEFAULT_TIMEOUT"]
