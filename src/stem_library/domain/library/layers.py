"""
Advisory layer metadata for library entries.

Layers are display-only: they are not derived from the separation result.
"""

import random
from typing import Optional, Sequence

from .models import LayerInfo

# (id, name, icon) for every layer the UI knows how to draw
LAYER_TAXONOMY: tuple[tuple[str, str, str], ...] = (
    ("bass", "Bass", "Volume2"),
    ("drums", "Percussion", "Drum"),
    ("vocals", "Vocals", "Mic"),
    ("piano", "Piano", "Piano"),
    ("guitar", "Guitar", "Music"),
    ("synths", "Synths", "Zap"),
    ("strings", "Strings", "Music2"),
)

MIN_LAYERS = 3
MAX_LAYERS = 5
MIN_RAW_VOLUME = 60
MAX_RAW_VOLUME = 99


def normalize_volumes(raw: Sequence[float]) -> list[int]:
    """Scale raw volumes so they sum to roughly 100.

    Each value becomes round(100 * raw_i / sum(raw)); the result may be off
    by one or two after rounding. A zero total yields equal shares.

    Example:
        [60, 60, 80] -> [30, 30, 40]
    """
    if not raw:
        return []

    total = sum(raw)
    if total <= 0:
        return [round(100 / len(raw))] * len(raw)

    return [round(100 * value / total) for value in raw]


def generate_layers(rng: Optional[random.Random] = None) -> list[LayerInfo]:
    """Pick a random subset of the taxonomy with normalized volumes.

    Args:
        rng: Random source (module-level random when omitted)

    Returns:
        3-5 distinct layers whose volumes sum to ~100
    """
    rng = rng or random.Random()

    count = rng.randint(MIN_LAYERS, MAX_LAYERS)
    selected = rng.sample(LAYER_TAXONOMY, count)
    raw = [rng.randint(MIN_RAW_VOLUME, MAX_RAW_VOLUME) for _ in selected]

    return [
        LayerInfo(id=layer_id, name=name, icon=icon, volume=volume)
        for (layer_id, name, icon), volume in zip(selected, normalize_volumes(raw))
    ]
