# util/constants.py
from typing import Final


class Confidence:
    VERIFIED: Final[float] = 1.0
    NON_HAZARD_RULE: Final[float] = 0.95
    DIRECT_RULE: Final[float] = 0.92
    NO_MATCH: Final[float] = 0.1
    FLOOR: Final[float] = 0.3
    CEILING: Final[float] = 0.99
    AGREEMENT_STEP: Final[float] = 0.1
    HISTORY_BONUS: Final[float] = 0.1
    LOW_WARNING: Final[float] = 0.5


class Citations:
    HMT_REF: Final[str] = "49 CFR 172.101"
    ERG_REF: Final[str] = "ERG 2024"


# Valid DOT hazard classes / divisions
HAZARD_CLASSES: Final[frozenset] = frozenset(
    {"1", "2", "3", "4.1", "4.2", "4.3", "5.1", "5.2", "6.1", "6.2", "7", "8", "9"}
)

LOCAL_HASH_PROVIDER: Final[str] = "local-hash"
