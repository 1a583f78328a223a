from __future__ import annotations

import os
from dataclasses import dataclass, fields

ENV_PREFIX = "PEDIGREE_"


def _f(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except Exception:
        return default


def _i(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except Exception:
        return default


@dataclass(frozen=True)
class LayoutConfig:
    # Horizontal footprint; neighbours are kept at least half of each width apart
    person_width: float = 10.0
    other_width: float = 2.0

    # Iteration bounds for the heuristic passes
    max_init_ordering_buckets: int = 5
    max_ordering_iterations: int = 24
    max_xcoord_iterations: int = 40
    xcoord_tolerance: float = 0.01

    # Vertical geometry (pixels)
    hub_row_height: float = 40.0
    person_row_height: float = 60.0
    lane_height: float = 10.0
    attach_height: float = 4.0

    @staticmethod
    def env_name(field_name: str) -> str:
        return ENV_PREFIX + field_name.upper()

    @classmethod
    def from_env(cls) -> LayoutConfig:
        """Read ``PEDIGREE_<FIELD>`` overrides (e.g. after a .env file was loaded)."""
        values = {}
        for f in fields(cls):
            read = _i if isinstance(f.default, int) else _f
            values[f.name] = read(cls.env_name(f.name), f.default)
        return cls(**values)


CONFIG = LayoutConfig.from_env()
