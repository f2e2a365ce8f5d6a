from __future__ import annotations

from typing import Iterable, List


class InputValidationError(ValueError):
    """Raised when evaluation data is malformed at the boundary.

    Distinct from missing data, which the engines report as ``None``, zero,
    or an empty list.
    """

    def __init__(self, errors: Iterable[str]) -> None:
        self.errors: List[str] = list(errors)
        message = "; ".join(self.errors) if self.errors else "invalid input"
        super().__init__(message)


__all__ = ["InputValidationError"]
