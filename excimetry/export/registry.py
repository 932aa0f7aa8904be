"""Closed set of exporters and the factory that picks one by name."""
from __future__ import annotations
from enum import Enum
from typing import Union

from ..errors import ConfigurationError
from .collapsed import CollapsedExporter
from .otlp import OTLPExporter
from .speedscope import SpeedscopeExporter

Exporter = Union[CollapsedExporter, SpeedscopeExporter, OTLPExporter]


class ExportFormat(str, Enum):
    COLLAPSED = 'collapsed'
    SPEEDSCOPE = 'speedscope'
    OTLP = 'otlp'

    @classmethod
    def parse(cls, value: "ExportFormat | str") -> "ExportFormat":
        try:
            return cls(value)
        except ValueError:
            raise ConfigurationError(
                f"Invalid export format: {value}. Supported formats are 'speedscope', 'collapsed', and 'otlp'."
            ) from None


def create_exporter(fmt: "ExportFormat | str", **options) -> Exporter:
    """Build the exporter for ``fmt``; ``options`` go to its constructor."""
    fmt = ExportFormat.parse(fmt)
    if fmt is ExportFormat.COLLAPSED:
        return CollapsedExporter(**options)
    if fmt is ExportFormat.SPEEDSCOPE:
        return SpeedscopeExporter(**options)
    return OTLPExporter(**options)


__all__ = ["Exporter", "ExportFormat", "create_exporter"]
