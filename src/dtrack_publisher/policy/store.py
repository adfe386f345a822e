from __future__ import annotations

from pathlib import Path
from typing import Optional

from .thresholds import ThresholdConfig

DEFAULT_THRESHOLDS = ThresholdConfig()


def load_thresholds(path: Optional[Path]) -> ThresholdConfig:
    """Read a threshold file such as::

        {"total_findings": {"failed": {"critical": 1}, "unstable": {"high": 5}},
         "new_findings": {"unstable": {"critical": 1}}}

    No path means no limits at all.
    """
    if path is None:
        return DEFAULT_THRESHOLDS
    return ThresholdConfig.model_validate_json(path.read_text(encoding="utf-8"))

