"""Sample log parser and profile model.

Raw sample log format (one stack sample per line)
-------------------------------------------------
    frame1;frame2;...;frameN <count>

Frames are ordered root to leaf and ``count`` is a positive integer. Lines that
do not have this shape (no trailing count, zero count, blank) are dropped
without raising: a malformed log degrades the profile, it never aborts the
caller.

Each Profile parses its log once and keeps the result; copies made by
``with_metadata`` share it. ``parse_raw_log`` itself keeps only a handful of
recent logs cached.
"""
from __future__ import annotations
import re
from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple, Union

from ..debug_util import dbg

STACK_DELIMITER = ';'
SAMPLE_LINE_RE = re.compile(r"^(.+) (\d+)$")

# Tagged scalar accepted as metadata; anything else is carried but not exported
# by formatters that need a scalar representation.
MetadataValue = Union[str, int, float, bool]


@dataclass(frozen=True)
class Sample:
    frames: Tuple[str, ...]
    count: int

    @property
    def stack_key(self) -> str:
        return STACK_DELIMITER.join(self.frames)

    @property
    def leaf(self) -> str:
        return self.frames[-1]


@lru_cache(maxsize=8)
def parse_raw_log(raw: str) -> Tuple[Sample, ...]:
    samples = []
    dropped = 0
    for line in raw.strip().split('\n'):
        line = line.rstrip('\r')
        if not line.strip():
            continue
        m = SAMPLE_LINE_RE.match(line)
        if not m:
            dropped += 1
            continue
        count = int(m.group(2))
        if count < 1:
            dropped += 1
            continue
        samples.append(Sample(frames=tuple(m.group(1).split(STACK_DELIMITER)), count=count))
    if dropped:
        dbg(f'parse_raw_log dropped_lines={dropped} kept={len(samples)}')
    return tuple(samples)


def is_scalar(value) -> bool:
    return isinstance(value, (str, int, float, bool))


@dataclass(frozen=True)
class Profile:
    """One profiling session: the raw sample log plus ordered metadata.

    Immutable. Owners extend metadata through ``with_metadata`` which returns a
    new Profile; exporters only read.
    """
    raw_log: str
    metadata: Mapping[str, object] = field(default_factory=dict, compare=False)
    _samples: Optional[Tuple[Sample, ...]] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        # detached, read-only copy of the caller's mapping
        object.__setattr__(self, 'metadata', MappingProxyType(dict(self.metadata)))

    @property
    def samples(self) -> Tuple[Sample, ...]:
        if self._samples is None:
            object.__setattr__(self, '_samples', parse_raw_log(self.raw_log))
        return self._samples

    def with_metadata(self, **items) -> "Profile":
        merged = dict(self.metadata)
        merged.update(items)
        copy = Profile(self.raw_log, merged)
        object.__setattr__(copy, '_samples', self._samples)
        return copy

    def scalar_metadata(self) -> Dict[str, MetadataValue]:
        return {k: v for k, v in self.metadata.items() if is_scalar(v)}


__all__ = ["Sample", "Profile", "MetadataValue", "parse_raw_log", "is_scalar", "STACK_DELIMITER"]
