"""Collapsed (folded) stack exporter.

Output is the aggregated-stack text consumed by FlameGraph and Pyroscope:

    main;A;B 1
    main;A;C 2

One line per distinct stack, first-seen order, counts of repeated stacks summed.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict

from ..ingestion.parser import Profile, STACK_DELIMITER


@dataclass(frozen=True)
class CollapsedExporter:
    reverse_stack: bool = False  # leaf first instead of root first
    delimiter: str = STACK_DELIMITER

    content_type = 'text/plain'
    file_extension = 'txt'

    def aggregate(self, profile: Profile) -> Dict[str, int]:
        collapsed: Dict[str, int] = {}
        for sample in profile.samples:
            frames = reversed(sample.frames) if self.reverse_stack else sample.frames
            key = self.delimiter.join(frames)
            collapsed[key] = collapsed.get(key, 0) + sample.count
        return collapsed

    def render(self, profile: Profile) -> str:
        return ''.join(f'{key} {count}\n' for key, count in self.aggregate(profile).items())

    def export(self, profile: Profile) -> bytes:
        return self.render(profile).encode('utf-8')


__all__ = ["CollapsedExporter"]
