# util/enums.py
from enum import Enum
from typing import NamedTuple


class Color(str, Enum):
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    BOLD = "\033[1m"

    def __str__(self):
        return self.value


class Environment(str, Enum):
    DEV = "dev"
    PROD = "prod"


class Outcome(str, Enum):
    CLASSIFIED = "classified"
    NON_HAZARDOUS = "non_hazardous"
    UNCLASSIFIED = "unclassified"


class ResultSource(str, Enum):
    """Which pipeline stage produced a ClassificationResult."""

    RULE_NONHAZ = "rule-nonhaz"
    RULE_DIRECT = "rule-direct"
    VERIFIED = "database-verified"
    RETRIEVAL = "cfr-hmt"
    NO_MATCH = "rag"
    ERROR = "error"


class CandidateSource(str, Enum):
    HMT = "hmt"
    ERG = "erg"
    PRODUCTS = "products"
    HISTORICAL = "historical"
    CFR = "cfr"


class Stage(str, Enum):
    INPUT = "input"
    NON_HAZARD_RULE_CHECK = "non_hazard_rule_check"
    DIRECT_PATTERN_CHECK = "direct_pattern_check"
    VERIFIED_RECORD_CHECK = "verified_record_check"
    QUERY_EXPAND = "query_expand"
    EMBED = "embed"
    GATED_SEARCH = "gated_search"
    UNGATED_SEARCH = "ungated_search"
    RERANK = "rerank"
    CONFIDENCE_CALC = "confidence_calc"
    AUGMENT = "augment"
    RESULT = "result"


class QueryIntent(str, Enum):
    CLASSIFICATION = "classification"
    EMERGENCY_RESPONSE = "emergency_response"
    SHIPPING_REQUIREMENTS = "shipping_requirements"
    PACKAGING = "packaging"
    DOCUMENTATION = "documentation"
    COMPLIANCE = "compliance"
    PRODUCT_LOOKUP = "product_lookup"
    GENERAL = "general"


class ErrorInfo(NamedTuple):
    message: str
    exit_code: int


class ErrorMessage(Enum):
    INDEX_UNAVAILABLE = ErrorInfo(
        "Hazmat index unavailable. Rebuild it with the indexing job "
        "(extract HMT from 49 CFR 172.101, then build the index) and reload.",
        2,
    )
    INDEX_DIMENSION_MISMATCH = ErrorInfo(
        "Hazmat index mixes embedding dimensions. Rebuild the index with a single model.",
        2,
    )
