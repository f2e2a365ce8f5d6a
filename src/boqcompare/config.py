from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from types import SimpleNamespace
from typing import Mapping, Optional

from .models import ALGORITHMS, NormalizationSettings

_BOOLEAN_TRUE = {"1", "true", "yes", "on"}
_BOOLEAN_FALSE = {"0", "false", "no", "off"}

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Config:
    """Runtime configuration assembled from environment variables and CLI options."""

    base_dir: Path
    output_dir: Path
    output_json: Path
    output_xlsx: Path
    normalize_unpriced: bool = True
    normalize_arithmetic_errors: bool = True
    algorithm: str = "median"
    verbose: bool = False

    @property
    def settings(self) -> NormalizationSettings:
        return NormalizationSettings(
            normalize_unpriced=self.normalize_unpriced,
            normalize_arithmetic_errors=self.normalize_arithmetic_errors,
            algorithm=self.algorithm,
        )


def _to_path(value: object | None) -> Optional[Path]:
    if value is None:
        return None
    if isinstance(value, Path):
        return value.expanduser().resolve()
    text = str(value).strip()
    if not text:
        return None
    return Path(text).expanduser().resolve()


def _flag(value: object | None, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _BOOLEAN_TRUE:
        return True
    if text in _BOOLEAN_FALSE:
        return False
    return default


def _algorithm(value: object | None) -> str:
    if value is None or not str(value).strip():
        return "median"
    text = str(value).strip().lower()
    if text not in ALGORITHMS:
        logger.warning("Unknown fill algorithm %r; using median", value)
        return "median"
    return text


def _namespace(cli_args: object | None) -> SimpleNamespace:
    if cli_args is None:
        return SimpleNamespace()
    if isinstance(cli_args, SimpleNamespace):
        return cli_args
    if hasattr(cli_args, "__dict__"):
        return SimpleNamespace(**{k: v for k, v in vars(cli_args).items()})
    return SimpleNamespace()


def load_config(env: Mapping[str, str], cli_args: object | None = None) -> Config:
    """Build a runtime :class:`Config` from environment variables and CLI options.

    Environment variables (``BOQ_NORMALIZE_UNPRICED``,
    ``BOQ_NORMALIZE_ARITHMETIC_ERRORS``, ``BOQ_FILL_ALGORITHM``, ``OUTPUT_DIR``,
    ``OUTPUT_JSON``, ``OUTPUT_XLSX``) override the built-in defaults, and CLI
    options override the environment.  ``--output-dir`` relocates both output
    files even when ``OUTPUT_JSON`` or ``OUTPUT_XLSX`` is set.  The
    ``--keep-*`` switches only ever turn normalization off; they cannot
    re-enable a step the environment disabled.
    """

    base_dir = Path(__file__).resolve().parents[2]
    default_output_dir = (base_dir / "outputs").resolve()

    output_dir = _to_path(env.get("OUTPUT_DIR")) or default_output_dir
    output_json = _to_path(env.get("OUTPUT_JSON")) or (output_dir / "normalized_bids.json").resolve()
    output_xlsx = _to_path(env.get("OUTPUT_XLSX")) or (output_dir / "BOQ_Comparison.xlsx").resolve()
    normalize_unpriced = _flag(env.get("BOQ_NORMALIZE_UNPRICED"), True)
    normalize_arithmetic_errors = _flag(env.get("BOQ_NORMALIZE_ARITHMETIC_ERRORS"), True)
    algorithm = _algorithm(env.get("BOQ_FILL_ALGORITHM"))
    verbose = False

    cli_ns = _namespace(cli_args)
    if getattr(cli_ns, "output_dir", None):
        output_dir = _to_path(cli_ns.output_dir) or output_dir
        output_json = (output_dir / "normalized_bids.json").resolve()
        output_xlsx = (output_dir / "BOQ_Comparison.xlsx").resolve()
    if getattr(cli_ns, "algorithm", None):
        algorithm = _algorithm(cli_ns.algorithm)
    if getattr(cli_ns, "keep_unpriced", False):
        normalize_unpriced = False
    if getattr(cli_ns, "keep_arithmetic_errors", False):
        normalize_arithmetic_errors = False
    if getattr(cli_ns, "verbose", False):
        verbose = bool(cli_ns.verbose)

    return Config(
        base_dir=base_dir,
        output_dir=output_dir,
        output_json=output_json,
        output_xlsx=output_xlsx,
        normalize_unpriced=normalize_unpriced,
        normalize_arithmetic_errors=normalize_arithmetic_errors,
        algorithm=algorithm,
        verbose=verbose,
    )


__all__ = ["Config", "load_config"]
