"""
SIG Parser
==========

Extracts dose, dose unit, frequency per day, route and special dosage form
from free-text prescription instructions ("Take 1 tablet by mouth twice daily").

Deterministic pattern matcher. Fields that cannot be extracted stay None;
parsing never raises for malformed text.
"""

import math
import re
from typing import Callable, List, Optional, Tuple

from .unit_normalizer import normalize_unit, is_volume_unit
from ..config.dispense_config import load_sig_patterns
from ..models import NormalizedSig, LIQUID, INSULIN, INHALER


DoseUnit = Tuple[float, Optional[str]]


# =============================================================================
# PHRASE TABLES
# =============================================================================

def _phrase_matcher(phrase: str) -> Callable[[str], bool]:
    """Substring test; short alphabetic abbreviations (po, im, bid) must start at a word boundary."""
    if len(phrase) <= 3 and phrase.isalpha():
        rx = re.compile(rf'\b{re.escape(phrase)}')
        return lambda text: rx.search(text) is not None
    return lambda text: phrase in text


def _build_phrase_table(rows) -> Tuple[Tuple[str, object, Callable[[str], bool]], ...]:
    table = []
    for phrase, value in rows:
        phrase = str(phrase).lower()
        table.append((phrase, value, _phrase_matcher(phrase)))
    return tuple(table)


_patterns = load_sig_patterns()
FREQUENCY_PHRASES = _build_phrase_table(_patterns['frequency_phrases'])
ROUTE_PHRASES = _build_phrase_table(_patterns['route_phrases'])

LIQUID_WORDS = ('teaspoon', 'tsp', 'tablespoon', 'tbsp', 'ounce', 'fl oz')


# =============================================================================
# DOSE AND UNIT
# =============================================================================

# "1 tablet", "2 tabs", "5 ml", "2 fl oz"
WORD_UNIT_RE = re.compile(r'(\d+(?:\.\d+)?)\s+((?:fl\.?\s+|fluid\s+)?[a-z]+)\b', re.IGNORECASE)

# "10mg", "5ml", "2tabs"
COMPACT_UNIT_RE = re.compile(r'(\d+(?:\.\d+)?)\s*(mg|ml|g|l|units?|tabs?|caps?)\b', re.IGNORECASE)

# Leading number, unit inferred from the next word if any
LEADING_NUMBER_RE = re.compile(r'^(\d+(?:\.\d+)?)')
NEXT_WORD_RE = re.compile(r'\b([a-z]+)\b', re.IGNORECASE)


def _positive(value: str) -> Optional[float]:
    dose = float(value)
    if math.isfinite(dose) and dose > 0:
        return dose
    return None


def _dose_from_word_unit(sig: str) -> Optional[DoseUnit]:
    match = WORD_UNIT_RE.search(sig)
    if not match:
        return None
    dose = _positive(match.group(1))
    if dose is None:
        return None
    return dose, normalize_unit(match.group(2))


def _dose_from_compact_unit(sig: str) -> Optional[DoseUnit]:
    match = COMPACT_UNIT_RE.search(sig)
    if not match:
        return None
    dose = _positive(match.group(1))
    if dose is None:
        return None
    return dose, normalize_unit(match.group(2))


def _dose_from_leading_number(sig: str) -> Optional[DoseUnit]:
    match = LEADING_NUMBER_RE.match(sig)
    if not match:
        return None
    dose = _positive(match.group(1))
    if dose is None:
        return None
    unit_match = NEXT_WORD_RE.search(sig[match.end():])
    if unit_match:
        return dose, normalize_unit(unit_match.group(1))
    return dose, None


# Tried in order, first match wins
DOSE_EXTRACTORS: Tuple[Callable[[str], Optional[DoseUnit]], ...] = (
    _dose_from_word_unit,
    _dose_from_compact_unit,
    _dose_from_leading_number,
)


def extract_dose_and_unit(sig: str) -> Tuple[Optional[float], Optional[str]]:
    """Return (dose, dose_unit); either may be None."""
    for extractor in DOSE_EXTRACTORS:
        result = extractor(sig)
        if result is not None:
            return result
    return None, None


# =============================================================================
# FREQUENCY
# =============================================================================

TIMES_PER_DAY_RE = re.compile(r'(?<!\d)(\d{1,3})\s*(?:times?|x)\s*(?:per\s*day|daily|a\s*day)')
EVERY_N_HOURS_RE = re.compile(r'every\s*(\d{1,3})(?!\d)\s*hours?')


def _frequency_from_phrases(text: str) -> Optional[float]:
    for _, per_day, matches in FREQUENCY_PHRASES:
        if matches(text):
            return per_day
    return None


def _frequency_from_times_per_day(text: str) -> Optional[float]:
    match = TIMES_PER_DAY_RE.search(text)
    if match:
        times = int(match.group(1))
        if 1 <= times <= 12:
            return times
    return None


def _frequency_from_every_n_hours(text: str) -> Optional[float]:
    match = EVERY_N_HOURS_RE.search(text)
    if match:
        hours = int(match.group(1))
        if 1 <= hours <= 24:
            # Half rounds up
            return int(math.floor(24 / hours + 0.5))
    return None


FREQUENCY_EXTRACTORS: Tuple[Callable[[str], Optional[float]], ...] = (
    _frequency_from_phrases,
    _frequency_from_times_per_day,
    _frequency_from_every_n_hours,
)


def extract_frequency_per_day(sig: str) -> Optional[float]:
    """Administrations per day, or None."""
    text = sig.lower()
    for extractor in FREQUENCY_EXTRACTORS:
        per_day = extractor(text)
        if per_day is not None:
            return per_day
    return None


# =============================================================================
# ROUTE AND DOSAGE FORM
# =============================================================================

def extract_route(sig: str) -> Optional[str]:
    """Canonical route (oral, topical, injection, ...) or None."""
    text = sig.lower()
    for _, route, matches in ROUTE_PHRASES:
        if matches(text):
            return route
    return None


def detect_dosage_form(sig: str, dose_unit: Optional[str], route: Optional[str]) -> Optional[str]:
    """
    Classify special dosage forms that change the quantity math.

    Checked in order inhaler, insulin, liquid. A bare "units" dose is only
    insulin when the text says insulin or the unit is given subcutaneously.
    """
    text = sig.lower()
    unit = (dose_unit or '').lower()

    if route == 'inhalation' or 'inhal' in text or unit in ('puff', 'spray'):
        return INHALER

    if 'insulin' in text or (unit == 'unit' and 'subcutaneous' in text):
        return INSULIN

    if is_volume_unit(unit) or any(word in text for word in LIQUID_WORDS):
        return LIQUID

    return None


# =============================================================================
# FULL PARSE
# =============================================================================

def parse_sig(sig: str) -> NormalizedSig:
    """
    Parse a SIG string into a NormalizedSig.

    Empty or non-string input gives an empty NormalizedSig. Whatever subset of
    fields could be extracted is returned.
    """
    if not isinstance(sig, str):
        return NormalizedSig()

    text = sig.strip()
    if not text:
        return NormalizedSig()

    dose, dose_unit = extract_dose_and_unit(text)
    route = extract_route(text)

    return NormalizedSig(
        dose=dose,
        dose_unit=dose_unit,
        frequency_per_day=extract_frequency_per_day(text),
        route=route,
        dosage_form=detect_dosage_form(text, dose_unit, route),
    )


def missing_sig_fields(parsed: Optional[NormalizedSig]) -> List[str]:
    """Names of the missing fields among dose, dose unit and frequency."""
    parsed = parsed or NormalizedSig()
    missing = []
    if parsed.dose is None:
        missing.append('dose')
    if parsed.dose_unit is None:
        missing.append('dose unit')
    if parsed.frequency_per_day is None:
        missing.append('frequency')
    return missing


def is_sig_complete(parsed: Optional[NormalizedSig]) -> bool:
    """True when dose, dose unit and frequency are all present."""
    return not missing_sig_fields(parsed)


def get_partial_parse_warning(parsed: Optional[NormalizedSig]) -> Optional[str]:
    missing = missing_sig_fields(parsed)
    if missing:
        return f"Could not parse {', '.join(missing)} from SIG. Some calculations may be incomplete."
    return None
