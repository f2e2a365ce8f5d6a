"""BOQ bid normalization and contractor ranking for construction procurement."""

from .config import Config, load_config
from .errors import InputValidationError
from .models import ContractorBid, NormalizationSettings
from .normalization import normalize_bids
from .ranking import award_readiness, commercial_rankings, technical_rankings

__all__ = [
    "Config",
    "load_config",
    "InputValidationError",
    "ContractorBid",
    "NormalizationSettings",
    "normalize_bids",
    "award_readiness",
    "commercial_rankings",
    "technical_rankings",
]
