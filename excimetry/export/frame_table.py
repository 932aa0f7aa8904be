from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from ..ingestion.parser import Sample


@dataclass
class FrameTable:
    """Frame name <-> integer id, ids handed out in first-seen sample order.

    Rebuilt for every export so two exports of one Profile get identical ids.
    """
    ids: Dict[str, int] = field(default_factory=dict)
    names: List[str] = field(default_factory=list)

    @classmethod
    def build(cls, samples: Iterable[Sample]) -> "FrameTable":
        table = cls()
        for sample in samples:
            for name in sample.frames:
                if name not in table.ids:
                    table.ids[name] = len(table.names)
                    table.names.append(name)
        return table

    def id_of(self, name: str) -> int:
        return self.ids[name]

    def ids_for(self, frames: Iterable[str]) -> Tuple[int, ...]:
        return tuple(self.ids[f] for f in frames)

    def __len__(self) -> int:
        return len(self.names)


__all__ = ["FrameTable"]
