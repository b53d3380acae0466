from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class Plan:
    id: str
    name: str
    units_per_cycle: int
