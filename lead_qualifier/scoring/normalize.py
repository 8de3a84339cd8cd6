"""
Value normalization shared by the feature extractor and the rule scorer.

Free-text capture-form answers ("51-200", "$50k+", "within 3 months",
"VP of Sales") are mapped into a small set of comparable value spaces:
numeric ranges, canonical industries and seniority levels.
"""
import math
import re
from typing import NamedTuple, Optional, Tuple


class NumericRange(NamedTuple):
    low: float
    high: float  # math.inf for open-ended ranges ("50k+")

    @property
    def midpoint(self) -> float:
        if math.isinf(self.high):
            return self.low * 1.5
        return (self.low + self.high) / 2

    def overlaps(self, other: "NumericRange") -> bool:
        return self.low <= other.high and other.low <= self.high

    def gap_to(self, other: "NumericRange") -> Tuple[float, float]:
        """Distance between two disjoint ranges and the ideal bound it is measured from."""
        if self.high < other.low:
            return other.low - self.high, other.low
        return self.low - other.high, other.high


def normalize_text(value) -> str:
    if value is None:
        return ""
    return " ".join(str(value).lower().split())


def is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def contains_term(text: str, term: str) -> bool:
    """Whole-word containment: "cto" is in "cto / founder" but not in "director"."""
    return re.search(rf"(?<![a-z0-9]){re.escape(term)}(?![a-z0-9])", text) is not None


# --- Amounts (budget, company size) ---

_NUMBER_RE = re.compile(
    r"(\d+(?:,\d{3})*(?:\.\d+)?)\s*(k|mm|m|b|thousand|million|billion)?(?![a-z])"
)

_MULTIPLIERS = {
    None: 1,
    "k": 1_000,
    "thousand": 1_000,
    "m": 1_000_000,
    "mm": 1_000_000,
    "million": 1_000_000,
    "b": 1_000_000_000,
    "billion": 1_000_000_000,
}

_LOWER_BOUND_WORDS = ("over", "more than", "above", "at least", "greater than", "min ")
_UPPER_BOUND_WORDS = ("under", "less than", "below", "up to", "fewer than", "max ", "<")

_COMPANY_SIZE_KEYWORDS = (
    ("solo", NumericRange(1, 1)),
    ("freelance", NumericRange(1, 1)),
    ("startup", NumericRange(1, 50)),
    ("small", NumericRange(1, 50)),
    ("smb", NumericRange(1, 200)),
    ("mid-market", NumericRange(200, 1000)),
    ("midmarket", NumericRange(200, 1000)),
    ("medium", NumericRange(200, 1000)),
    ("enterprise", NumericRange(1000, math.inf)),
    ("large", NumericRange(1000, math.inf)),
)


def parse_amount_range(value) -> Optional[NumericRange]:
    """
    Parse "$10,000 - $25,000", "50k+", "under 5k" or "200" into a range.
    Returns None when the text holds no number.
    """
    text = normalize_text(value)
    if not text:
        return None

    matches = [
        (float(match.group(1).replace(",", "")), match.group(2))
        for match in _NUMBER_RE.finditer(text)
    ]
    if not matches:
        return None

    if len(matches) >= 2:
        (first, first_unit), (second, second_unit) = matches[0], matches[1]
        second *= _MULTIPLIERS[second_unit]
        # "50-100k": a bare leading number shares the trailing unit
        if first_unit is None and second_unit is not None and first * _MULTIPLIERS[second_unit] <= second:
            first *= _MULTIPLIERS[second_unit]
        else:
            first *= _MULTIPLIERS[first_unit]
        return NumericRange(min(first, second), max(first, second))

    number = matches[0][0] * _MULTIPLIERS[matches[0][1]]
    if text.endswith("+") or "+" in text or any(word in text for word in _LOWER_BOUND_WORDS):
        return NumericRange(number, math.inf)
    if any(word in text for word in _UPPER_BOUND_WORDS):
        return NumericRange(0, number)
    return NumericRange(number, number)


def parse_company_size(value) -> Optional[NumericRange]:
    """Employee-count range from a size bucket or a size keyword."""
    parsed = parse_amount_range(value)
    if parsed is not None:
        return parsed
    text = normalize_text(value)
    for keyword, size_range in _COMPANY_SIZE_KEYWORDS:
        if keyword in text:
            return size_range
    return None


# --- Timelines (horizon in days) ---

_UNIT_DAYS = {"day": 1, "week": 7, "month": 30, "quarter": 90, "year": 365}

_TIMELINE_RE = re.compile(
    r"(\d+)\s*(?:-|to)?\s*(\d+)?\s*(day|week|month|quarter|year)s?"
)

_TIMELINE_KEYWORDS = (
    ("immediately", NumericRange(0, 7)),
    ("asap", NumericRange(0, 7)),
    ("urgent", NumericRange(0, 7)),
    ("today", NumericRange(0, 7)),
    ("right now", NumericRange(0, 7)),
    ("this week", NumericRange(0, 7)),
    ("next week", NumericRange(7, 14)),
    ("this month", NumericRange(0, 30)),
    ("next month", NumericRange(30, 60)),
    ("this quarter", NumericRange(0, 90)),
    ("next quarter", NumericRange(90, 180)),
    ("this year", NumericRange(0, 365)),
    ("next year", NumericRange(365, 730)),
    ("evaluating", NumericRange(365, math.inf)),
    ("researching", NumericRange(365, math.inf)),
    ("not sure", NumericRange(365, math.inf)),
    ("eventually", NumericRange(365, math.inf)),
    ("no timeline", NumericRange(365, math.inf)),
)


def parse_timeline(value) -> Optional[NumericRange]:
    """Buying horizon in days: "ASAP" -> 0-7, "within 3 months" -> 0-90, "6-12 months" -> 180-360."""
    text = normalize_text(value)
    if not text:
        return None

    match = _TIMELINE_RE.search(text)
    if match:
        unit = _UNIT_DAYS[match.group(3)]
        first = float(match.group(1)) * unit
        if match.group(2):
            second = float(match.group(2)) * unit
            return NumericRange(min(first, second), max(first, second))
        if any(word in text for word in ("within", "next ", "less than", "under", "up to")):
            return NumericRange(0, first)
        if any(word in text for word in ("more than", "over", "after", "+")):
            return NumericRange(first, math.inf)
        return NumericRange(first, first)

    for keyword, horizon in _TIMELINE_KEYWORDS:
        if keyword in text:
            return horizon
    return None


# --- Industry taxonomy ---

INDUSTRY_TAXONOMY = {
    "saas": ("saas", "software as a service", "software", "cloud software", "b2b software"),
    "fintech": ("fintech", "payments", "financial technology"),
    "financial services": ("financial services", "banking", "finance", "insurance", "investment"),
    "healthcare": ("healthcare", "health care", "healthtech", "medical", "pharma", "biotech"),
    "ecommerce": ("ecommerce", "e-commerce", "online retail", "d2c", "dtc"),
    "retail": ("retail", "consumer goods", "cpg"),
    "manufacturing": ("manufacturing", "industrial"),
    "education": ("education", "edtech", "e-learning", "higher education"),
    "marketing": ("marketing", "advertising", "agency", "media"),
    "real estate": ("real estate", "proptech", "property"),
    "logistics": ("logistics", "transportation", "supply chain", "shipping"),
    "professional services": ("consulting", "professional services", "legal", "accounting"),
}


def canonical_industry(value) -> Optional[str]:
    """Map an industry answer onto the taxonomy; unknown industries keep their normalized text."""
    text = normalize_text(value)
    if not text:
        return None
    for canonical, synonyms in INDUSTRY_TAXONOMY.items():
        if text == canonical or text in synonyms:
            return canonical
    for canonical, synonyms in INDUSTRY_TAXONOMY.items():
        for synonym in synonyms:
            if re.search(rf"\b{re.escape(synonym)}\b", text):
                return canonical
    return text


# --- Job title seniority ---

_SENIORITY_TIERS = (
    (1.0, ("ceo", "cto", "cfo", "coo", "cmo", "cio", "cro", "chief", "president", "owner", "founder", "co-founder", "partner")),
    (0.9, ("vp", "vice president", "svp", "evp", "head of")),
    (0.8, ("director",)),
    (0.65, ("manager", "lead", "senior", "principal")),
    (0.35, ("analyst", "associate", "coordinator", "specialist", "assistant", "intern")),
)


def seniority_level(title) -> Optional[float]:
    """Decision-making seniority in [0,1]; 0.5 for a title with no recognizable level."""
    text = normalize_text(title)
    if not text:
        return None
    for level, keywords in _SENIORITY_TIERS:
        for keyword in keywords:
            if contains_term(text, keyword):
                return level
    return 0.5


def log_scale(value: float, ceiling: float) -> float:
    """Map a positive magnitude onto [0,1] on a log10 scale saturating at ceiling."""
    if value <= 0:
        return 0.0
    return max(0.0, min(1.0, math.log10(value + 1) / math.log10(ceiling + 1)))


def clamp_unit(value, scale: Optional[float] = None) -> Optional[float]:
    """Clamp a score to [0,1]; values above 1 are read as percentages (or as `scale`-based)."""
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    if scale:
        number = number / scale
    elif number > 1:
        number = number / 100
    return max(0.0, min(1.0, number))
