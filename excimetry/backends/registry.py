"""Closed set of backends and the factory that builds one from configuration."""
from __future__ import annotations
from typing import Optional, Union

from ..config import BackendKind, ExcimetryConfig
from ..errors import ConfigurationError
from ..export.registry import Exporter, ExportFormat, create_exporter
from .file import FileBackend
from .http import HttpBackend
from .otlp import OTLPBackend
from .pyroscope import PyroscopeBackend

AnyBackend = Union[FileBackend, HttpBackend, OTLPBackend, PyroscopeBackend]


def exporter_for(config: ExcimetryConfig) -> Exporter:
    fmt = config.export_format
    if fmt is ExportFormat.OTLP:
        return create_exporter(fmt, service_name=config.service_name, encoding=config.otlp_encoding)
    return create_exporter(fmt)


def create_backend(config: ExcimetryConfig, exporter: Optional[Exporter] = None,
                   filename: Optional[str] = None) -> AnyBackend:
    """Build the backend selected by ``config.backend``.

    ``exporter`` overrides the default: the configured export format for file
    and generic HTTP, an OTLPExporter for otlp, collapsed stacks for pyroscope.
    """
    common = dict(retry=config.retry_policy(), async_send=config.async_export)
    kind = config.backend
    if kind is BackendKind.FILE:
        return FileBackend(
            exporter=exporter or exporter_for(config),
            directory=config.output_directory,
            filename=filename,
            **common,
        )
    if not config.backend_url:
        raise ConfigurationError(f'backend {kind.value} requires backend_url')
    if kind is BackendKind.HTTP:
        return HttpBackend(
            exporter=exporter or exporter_for(config),
            url=config.backend_url,
            timeout=config.http_timeout,
            **common,
        )
    if kind is BackendKind.OTLP:
        return OTLPBackend(
            collector_url=config.backend_url,
            service_name=config.service_name,
            encoding=config.otlp_encoding,
            exporter=exporter,
            timeout=config.http_timeout,
            **common,
        )
    if kind is BackendKind.PYROSCOPE:
        if not config.app_name:
            raise ConfigurationError('backend pyroscope requires app_name')
        return PyroscopeBackend(
            server_url=config.backend_url,
            app_name=config.app_name,
            labels=config.labels,
            exporter=exporter,
            timeout=config.http_timeout,
            **common,
        )
    raise ConfigurationError(f'Unsupported backend: {kind}')


__all__ = ["AnyBackend", "create_backend", "exporter_for"]
