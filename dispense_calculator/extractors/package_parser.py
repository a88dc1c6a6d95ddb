"""
Package Parser
==============

Parses FDA NDC directory data: package sizes from package descriptions,
NDC code normalization, active status and openFDA product records to
NdcCandidate objects.
"""

import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from .unit_normalizer import normalize_unit
from ..models import NdcCandidate, PackageSize


# =============================================================================
# PACKAGE SIZE
# =============================================================================

# "30 TABLET in 1 BOTTLE", "100 ML in 1 BOTTLE"
PACKAGE_SIZE_RE = re.compile(r'(\d+)\s+([A-Za-z]+)\s+in\s+\d+\s+[A-Za-z]+', re.IGNORECASE)


def parse_package_size(package_description: Optional[str]) -> Optional[PackageSize]:
    """Extract package size and unit, or None if the description doesn't match."""
    if not package_description:
        return None

    match = PACKAGE_SIZE_RE.search(package_description)
    if not match:
        return None

    size = int(match.group(1))
    if size <= 0:
        return None

    return PackageSize(package_size=size, package_unit=normalize_unit(match.group(2)))


# =============================================================================
# NDC CODES
# =============================================================================

NDC_SEPARATORS_RE = re.compile(r'[-\s]')
NDC_LIKE_RE = re.compile(r'^\d[\d\s-]{8,12}\d$')


def normalize_ndc(ndc: Optional[str]) -> Optional[str]:
    """
    Normalize an NDC to 11-digit XXXXX-XXXX-XX.

    10-digit codes are zero-padded on the left before the 5-4-2 split. Codes
    of any other length come back without separators.
    """
    if not ndc:
        return None

    cleaned = NDC_SEPARATORS_RE.sub('', ndc)
    if len(cleaned) == 10:
        cleaned = f"0{cleaned}"
    if len(cleaned) == 11:
        return f"{cleaned[:5]}-{cleaned[5:9]}-{cleaned[9:]}"

    return cleaned or None


def looks_like_ndc(text: Optional[str]) -> bool:
    """True for 10 or 11 digit codes, with or without dashes."""
    if not text:
        return False
    text = text.strip()
    if not NDC_LIKE_RE.match(text):
        return False
    return len(NDC_SEPARATORS_RE.sub('', text)) in (10, 11)


_DATE_FORMATS = ('%Y%m%d', '%Y-%m-%d')


def _parse_date(value: str) -> Optional[date]:
    value = value.strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value[:10], fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(value).date()
    except ValueError:
        return None


def is_active_ndc(expiration_date: Optional[str], today: Optional[date] = None) -> bool:
    """Active unless the listing expiration date is in the past. Missing or unreadable dates count as active."""
    if not expiration_date:
        return True

    expires = _parse_date(expiration_date)
    if expires is None:
        return True

    return expires > (today or date.today())


# =============================================================================
# FDA PRODUCT RECORDS
# =============================================================================

PACKAGE_UNIT_RE = re.compile(r'\b(TABLET|CAPSULE|ML|MG|G|UNIT|PUFF|SPRAY|DROP)\b', re.IGNORECASE)

DOSAGE_FORM_UNITS = (
    ('TABLET', 'TABLET'),
    ('CAPSULE', 'CAPSULE'),
    ('SOLUTION', 'ML'),
    ('SUSPENSION', 'ML'),
    ('INHALATION', 'PUFF'),
)


def extract_strength(active_ingredients: Optional[Iterable[Dict[str, Any]]]) -> Optional[str]:
    """Join ingredient strengths, e.g. "10 mg/1, 5 mg/1"."""
    if not isinstance(active_ingredients, (list, tuple)):
        return None
    strengths = [ing['strength'] for ing in active_ingredients
                 if isinstance(ing, dict) and isinstance(ing.get('strength'), str) and ing['strength']]
    return ", ".join(strengths) if strengths else None


def extract_unit(dosage_form: Optional[str], package_description: Optional[str]) -> Optional[str]:
    """Dispensing unit from the package description, else from the dosage form."""
    if package_description:
        match = PACKAGE_UNIT_RE.search(package_description)
        if match:
            return match.group(1).upper()

    if dosage_form:
        form = dosage_form.upper()
        for keyword, unit in DOSAGE_FORM_UNITS:
            if keyword in form:
                return unit

    return None


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _product_name(product: Dict[str, Any]) -> str:
    brand = product.get('brand_name') or product.get('proprietary_name')
    suffix = product.get('brand_name_suffix') or product.get('proprietary_name_suffix')
    if brand and suffix:
        return f"{brand} {suffix}".strip()
    return brand or product.get('generic_name') or product.get('non_proprietary_name') or "Unknown Product"


def candidates_from_fda_product(
    product: Dict[str, Any],
    rxcui: Optional[str] = None,
    today: Optional[date] = None,
) -> List[NdcCandidate]:
    """
    Convert one openFDA NDC product record into package candidates.

    One candidate per entry in `packaging`; products without packaging fall
    back to the product-level NDC and description. Records without a usable
    NDC are skipped.
    """
    packages = product.get('packaging') or [{
        'package_ndc': product.get('package_ndc') or product.get('product_ndc'),
        'description': product.get('package_description'),
    }]

    expiration = _text(product.get('listing_expiration_date'))
    active = is_active_ndc(expiration, today)
    strength = extract_strength(product.get('active_ingredients'))
    product_name = _product_name(product)

    candidates = []
    for package in packages:
        if not isinstance(package, dict):
            continue
        ndc = normalize_ndc(_text(package.get('package_ndc')) or _text(product.get('product_ndc')))
        if not ndc:
            continue
        description = _text(package.get('description')) or _text(package.get('package_description'))
        candidates.append(NdcCandidate(
            ndc=ndc,
            product_name=product_name,
            labeler_name=product.get('labeler_name'),
            package_description=description,
            strength=strength,
            unit=extract_unit(_text(product.get('dosage_form')), description),
            active=active,
            start_date=package.get('marketing_start_date') or product.get('marketing_start_date'),
            end_date=expiration,
            rx_cui=rxcui,
        ))

    return candidates
