"""Library configuration.

One frozen model built once and handed to the components that need it. Any
invalid field (mode, format, backend, negative retries...) raises
ConfigurationError at construction.

``from_env`` fills fields from ``EXCIMETRY_*`` environment variables; explicit
keyword arguments always win over the environment.

    EXCIMETRY_PERIOD            sampling period, seconds (float)
    EXCIMETRY_MODE              wall | cpu
    EXCIMETRY_EXPORT_FORMAT     speedscope | collapsed | otlp
    EXCIMETRY_OUTPUT_DIR        directory used by save()
    EXCIMETRY_ASYNC_EXPORT      1/true/yes enables fire-and-forget sends
    EXCIMETRY_MAX_RETRIES       retries after the first attempt
    EXCIMETRY_RETRY_DELAY_MS    pause between attempts
    EXCIMETRY_BACKEND           file | http | otlp | pyroscope
    EXCIMETRY_BACKEND_URL       target URL / collector base / server base
    EXCIMETRY_SERVICE_NAME      OTLP service.name
    EXCIMETRY_APP_NAME          Pyroscope application name
    EXCIMETRY_OTLP_ENCODING     json | protobuf
    EXCIMETRY_HTTP_TIMEOUT      per-attempt HTTP timeout, seconds
"""
from __future__ import annotations
import os
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .backends.base import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY_MS, RetryPolicy
from .errors import ConfigurationError
from .export.otlp import Encoding
from .export.registry import ExportFormat

VALID_MODES = ('wall', 'cpu')


class BackendKind(str, Enum):
    FILE = 'file'
    HTTP = 'http'
    OTLP = 'otlp'
    PYROSCOPE = 'pyroscope'


def validate_mode(mode: str) -> str:
    if mode not in VALID_MODES:
        raise ConfigurationError(f"Invalid profiling mode: {mode}. Supported modes are 'wall' and 'cpu'.")
    return mode


class ExcimetryConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    period: float = Field(default=0.01, gt=0)
    mode: str = 'wall'
    metadata: Dict[str, Any] = Field(default_factory=dict)
    export_format: ExportFormat = ExportFormat.SPEEDSCOPE
    output_directory: str = 'profiles'
    async_export: bool = False
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    retry_delay_ms: int = Field(default=DEFAULT_RETRY_DELAY_MS, ge=0)
    backend: BackendKind = BackendKind.FILE
    backend_url: Optional[str] = None
    service_name: str = 'python-application'
    app_name: Optional[str] = None
    labels: Dict[str, str] = Field(default_factory=dict)
    otlp_encoding: Encoding = Encoding.JSON
    http_timeout: float = Field(default=30.0, gt=0)

    def __init__(self, **data):
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e

    @field_validator('mode')
    @classmethod
    def _check_mode(cls, v: str) -> str:
        return validate_mode(v)

    @field_validator('output_directory')
    @classmethod
    def _trim_directory(cls, v: str) -> str:
        return v.rstrip('/') if len(v) > 1 else v

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_retries=self.max_retries, retry_delay_ms=self.retry_delay_ms)

    def with_metadata(self, **items) -> "ExcimetryConfig":
        merged = dict(self.metadata)
        merged.update(items)
        return self.model_copy(update={'metadata': merged})

    @classmethod
    def from_env(cls, **overrides) -> "ExcimetryConfig":
        env = os.environ
        values: Dict[str, Any] = {}
        simple = {
            'EXCIMETRY_PERIOD': 'period',
            'EXCIMETRY_MODE': 'mode',
            'EXCIMETRY_EXPORT_FORMAT': 'export_format',
            'EXCIMETRY_OUTPUT_DIR': 'output_directory',
            'EXCIMETRY_MAX_RETRIES': 'max_retries',
            'EXCIMETRY_RETRY_DELAY_MS': 'retry_delay_ms',
            'EXCIMETRY_BACKEND': 'backend',
            'EXCIMETRY_BACKEND_URL': 'backend_url',
            'EXCIMETRY_SERVICE_NAME': 'service_name',
            'EXCIMETRY_APP_NAME': 'app_name',
            'EXCIMETRY_OTLP_ENCODING': 'otlp_encoding',
            'EXCIMETRY_HTTP_TIMEOUT': 'http_timeout',
        }
        for var, key in simple.items():
            if var in env:
                values[key] = env[var]
        if 'EXCIMETRY_ASYNC_EXPORT' in env:
            values['async_export'] = env['EXCIMETRY_ASYNC_EXPORT'].lower() in ('1', 'true', 'yes')
        values.update(overrides)
        return cls(**values)


__all__ = ["ExcimetryConfig", "BackendKind", "validate_mode", "VALID_MODES"]
