from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from .config import load_config
from .cli import run_normalize


@dataclass
class ComparisonOptions:
    evaluation_json: Path
    overrides_json: Optional[Path] = None
    output_dir: Optional[Path] = None
    algorithm: Optional[str] = None
    normalize_unpriced: bool = True
    normalize_arithmetic_errors: bool = True


def compare(options: ComparisonOptions) -> Dict[str, Path]:
    """Programmatic interface to normalize an evaluation and return artifact paths.

    Returns a dict with keys: json, xlsx.
    """
    import os

    env = dict(os.environ)
    if options.output_dir:
        env["OUTPUT_DIR"] = str(options.output_dir)
        env.pop("OUTPUT_JSON", None)
        env.pop("OUTPUT_XLSX", None)
    if options.algorithm:
        env["BOQ_FILL_ALGORITHM"] = options.algorithm
    env["BOQ_NORMALIZE_UNPRICED"] = "1" if options.normalize_unpriced else "0"
    env["BOQ_NORMALIZE_ARITHMETIC_ERRORS"] = "1" if options.normalize_arithmetic_errors else "0"

    cfg = load_config(env, None)
    return run_normalize(
        cfg,
        Path(options.evaluation_json),
        Path(options.overrides_json) if options.overrides_json else None,
    )
