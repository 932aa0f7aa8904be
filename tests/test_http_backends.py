"""HTTP, OTLP and Pyroscope backends against a local http.server sink."""

import json
import socket
import threading
import time
import urllib.parse
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest
from excimetry.backends.base import RetryPolicy
from excimetry.backends.http import HttpBackend, http_request
from excimetry.backends.otlp import OTLPBackend
from excimetry.backends.pyroscope import PyroscopeBackend, label_string
from excimetry.export.collapsed import CollapsedExporter
from excimetry.export.otlp import Encoding, OTLPExporter
from excimetry.export.speedscope import SpeedscopeExporter
from excimetry.ingestion.parser import Profile
from opentelemetry.proto.collector.metrics.v1.metrics_service_pb2 import ExportMetricsServiceRequest

PROFILE = Profile("main;A;B 1\nmain;A;C 2\n", {'timestamp': 1700000000})
NO_RETRY = RetryPolicy(max_retries=0, retry_delay_ms=0)


class Sink:
    def __init__(self):
        self.requests = []
        self.statuses = []  # consumed per POST; empty -> 200
        self.received = threading.Event()
        sink = self

        class Handler(BaseHTTPRequestHandler):
            def do_POST(self):
                length = int(self.headers.get('Content-Length') or 0)
                body = self.rfile.read(length)
                sink.requests.append({'method': 'POST', 'path': self.path, 'headers': dict(self.headers), 'body': body})
                status = sink.statuses.pop(0) if sink.statuses else 200
                self.send_response(status)
                self.send_header('Content-Length', '2')
                self.end_headers()
                self.wfile.write(b'ok')
                sink.received.set()

            def do_HEAD(self):
                sink.requests.append({'method': 'HEAD', 'path': self.path})
                self.send_response(200)
                self.send_header('Content-Length', '0')
                self.end_headers()

            def log_message(self, *args):
                pass

        self.server = ThreadingHTTPServer(('127.0.0.1', 0), Handler)
        self.url = f'http://127.0.0.1:{self.server.server_address[1]}'
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)

    def posts(self):
        return [r for r in self.requests if r['method'] == 'POST']


@pytest.fixture
def sink():
    s = Sink()
    s.thread.start()
    yield s
    s.server.shutdown()
    s.server.server_close()


def _closed_port_url():
    s = socket.socket()
    s.bind(('127.0.0.1', 0))
    port = s.getsockname()[1]
    s.close()
    return f'http://127.0.0.1:{port}/'


# --- generic HTTP ---

def test_http_request_round_trip(sink):
    status, body = http_request('POST', sink.url + '/x?y=1', body=b'hi', headers={'Content-Type': 'text/plain'})
    assert status == 200 and body == b'ok'
    assert sink.posts()[0]['path'] == '/x?y=1'


def test_http_request_rejects_unsupported_scheme():
    with pytest.raises(ValueError):
        http_request('GET', 'ftp://example.com/file')


def test_http_backend_posts_payload_and_headers(sink):
    b = HttpBackend(exporter=CollapsedExporter(), url=sink.url + '/profiles', headers={'X-Token': 'abc'})
    assert b.send(PROFILE) is True
    req = sink.posts()[0]
    assert req['path'] == '/profiles'
    assert req['body'] == b"main;A;B 1\nmain;A;C 2\n"
    assert req['headers']['Content-Type'] == 'text/plain'
    assert req['headers']['X-Token'] == 'abc'


def test_user_header_overrides_content_type(sink):
    b = HttpBackend(exporter=SpeedscopeExporter(), url=sink.url, headers={'Content-Type': 'application/vnd.custom'})
    assert b.send(PROFILE)
    assert sink.posts()[0]['headers']['Content-Type'] == 'application/vnd.custom'


def test_server_error_is_retried(sink):
    sink.statuses = [500, 503]
    sleeps = []
    b = HttpBackend(exporter=CollapsedExporter(), url=sink.url,
                    retry=RetryPolicy(max_retries=3, retry_delay_ms=1), sleep=sleeps.append)
    outcome = b.send_with_outcome(PROFILE)
    assert outcome.success and outcome.attempts == 3
    assert len(sink.posts()) == 3
    assert len(sleeps) == 2


def test_non_2xx_exhausts_retries(sink, caplog):
    sink.statuses = [404] * 5
    b = HttpBackend(exporter=CollapsedExporter(), url=sink.url, retry=RetryPolicy(max_retries=1, retry_delay_ms=0))
    assert b.send(PROFILE) is False
    assert len(sink.posts()) == 2
    assert 'status code 404' in caplog.text


def test_connection_refused_returns_false():
    b = HttpBackend(exporter=CollapsedExporter(), url=_closed_port_url(), retry=NO_RETRY, timeout=2)
    assert b.send(PROFILE) is False
    assert b.is_available() is False


def test_bad_scheme_returns_false():
    b = HttpBackend(exporter=CollapsedExporter(), url='ftp://example.com/in', retry=NO_RETRY)
    assert b.send(PROFILE) is False
    assert b.is_available() is False


def test_is_available_probes_with_head(sink):
    b = HttpBackend(exporter=CollapsedExporter(), url=sink.url + '/health')
    assert b.is_available() is True
    assert sink.requests[0] == {'method': 'HEAD', 'path': '/health'}


def test_http_with_helpers():
    b = HttpBackend(exporter=CollapsedExporter(), url='http://a')
    b2 = b.with_url('http://b').with_headers({'K': 'v'}).with_timeout(3)
    assert (b.url, b.headers, b.timeout) == ('http://a', {}, 30.0)
    assert (b2.url, b2.headers, b2.timeout) == ('http://b', {'K': 'v'}, 3)


def test_async_post_arrives(sink):
    b = HttpBackend(exporter=CollapsedExporter(), url=sink.url, async_send=True)
    assert b.send(PROFILE) is True
    assert sink.received.wait(5)
    assert sink.posts()[0]['body'] == b"main;A;B 1\nmain;A;C 2\n"


# --- OTLP ---

def test_otlp_posts_json_to_traces_endpoint(sink):
    b = OTLPBackend(collector_url=sink.url + '/', service_name='checkout')
    assert b.url == sink.url + '/v1/traces'
    assert b.send(PROFILE)
    req = sink.posts()[0]
    assert req['path'] == '/v1/traces'
    assert req['headers']['Content-Type'] == 'application/json'
    assert req['headers']['Accept'] == 'application/json'
    doc = json.loads(req['body'])
    attrs = {a['key']: a['value'] for a in doc['resourceSpans'][0]['resource']['attributes']}
    assert attrs['service.name'] == {'stringValue': 'checkout'}


def test_otlp_protobuf_encoding(sink):
    b = OTLPBackend(collector_url=sink.url).with_encoding('protobuf')
    assert b.encoding is Encoding.PROTOBUF
    assert b.headers['Accept'] == 'application/x-protobuf'
    assert b.send(PROFILE)
    req = sink.posts()[0]
    assert req['headers']['Content-Type'] == 'application/x-protobuf'
    decoded = ExportMetricsServiceRequest.FromString(req['body'])
    assert [m.name for m in decoded.resource_metrics[0].scope_metrics[0].metrics] == ['B', 'C']


def test_otlp_trace_and_span_ids_forwarded(sink):
    b = OTLPBackend(collector_url=sink.url).with_trace_id('4bf92f3577b34da6').with_span_id('00f067aa0ba902b7')
    assert b.send(PROFILE)
    doc = json.loads(sink.posts()[0]['body'])
    attrs = {a['key']: a['value'] for a in doc['resourceSpans'][0]['resource']['attributes']}
    assert attrs['excimetry.trace_id'] == {'stringValue': '4bf92f3577b34da6'}
    assert attrs['excimetry.span_id'] == {'stringValue': '00f067aa0ba902b7'}
    assert 'trace_id' not in PROFILE.metadata


def test_otlp_with_service_name_keeps_exporter_in_sync():
    b = OTLPBackend(collector_url='http://collector:4318').with_service_name('billing')
    assert b.service_name == 'billing'
    assert isinstance(b.exporter, OTLPExporter)
    assert b.exporter.service_name == 'billing'
    assert b.url == 'http://collector:4318/v1/traces'


# --- Pyroscope ---

def test_label_string():
    assert label_string({'env': 'prod', 'region': 'eu'}) == 'env=prod,region=eu'
    assert label_string({}) == ''


def test_pyroscope_query_params():
    b = PyroscopeBackend(server_url='http://pyro:4040', app_name='shop').with_label('env', 'prod')
    params = b.query_params(PROFILE, now=1700000060)
    assert params == {'name': 'shop', 'from': '1700000000', 'until': '1700000060', 'labels': 'env=prod'}
    assert 'labels' not in b.with_labels({}).query_params(PROFILE, now=1)
    assert b.query_params(Profile('a 1'), now=42)['from'] == '42'


def test_pyroscope_ingest(sink):
    b = PyroscopeBackend(server_url=sink.url, app_name='shop.cpu', labels={'env': 'test'})
    before = int(time.time())
    assert b.send(PROFILE)
    req = sink.posts()[0]
    parsed = urllib.parse.urlsplit(req['path'])
    assert parsed.path == '/ingest'
    q = dict(urllib.parse.parse_qsl(parsed.query))
    assert q['name'] == 'shop.cpu'
    assert q['from'] == '1700000000'
    assert int(q['until']) >= before
    assert q['labels'] == 'env=test'
    assert req['body'] == b"main;A;B 1\nmain;A;C 2\n"
    assert req['headers']['Content-Type'] == 'text/plain'


def test_pyroscope_with_app_name_copy():
    b = PyroscopeBackend(server_url='http://pyro', app_name='a')
    b2 = b.with_app_name('b')
    assert (b.app_name, b2.app_name) == ('a', 'b')
    assert isinstance(b2.exporter, CollapsedExporter)


def test_otlp_with_url_moves_collector(sink):
    b = OTLPBackend(collector_url='http://collector:4318').with_url(sink.url + '/v1/traces')
    assert b.collector_url == sink.url
    assert b.url == sink.url + '/v1/traces'
    assert OTLPBackend(collector_url='http://a:4318').with_url('http://b:4318/').url == 'http://b:4318/v1/traces'
    assert b.send(PROFILE)
    assert sink.posts()[0]['path'] == '/v1/traces'


def test_pyroscope_with_url_moves_server(sink):
    b = PyroscopeBackend(server_url='http://pyro:4040', app_name='shop').with_url(sink.url)
    assert b.server_url == sink.url
    assert b.url == sink.url + '/ingest'
    assert b.with_url('http://other:4040/ingest').url == 'http://other:4040/ingest'
    assert b.send(PROFILE)
    assert urllib.parse.urlsplit(sink.posts()[0]['path']).path == '/ingest'
