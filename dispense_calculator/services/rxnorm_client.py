"""
RxNorm Client
=============

Resolves a drug name or NDC to an RxCUI through the RxNav REST API.

Lookup order:
1. NDC lookup when the input looks like an NDC, else exact name lookup
2. Approximate term search, best rank first then highest score
3. Properties lookup for the chosen RxCUI (name, strength, dosage form)

Transport errors propagate; callers wrap `resolve` with services.results.attempt.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from .http import get_json, make_session, object_list, section
from .ports import NameResolver, Resolution, UNRESOLVED
from ..config.dispense_config import SERVICE_CONFIG
from ..extractors.package_parser import looks_like_ndc

logger = logging.getLogger(__name__)


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def sort_approximate_candidates(candidates: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Drop entries without an rxcui; sort by rank ascending, then score descending."""
    valid = [c for c in candidates if isinstance(c, dict) and c.get('rxcui')]
    return sorted(valid, key=lambda c: (_as_int(c.get('rank'), 999), -_as_float(c.get('score'), 0.0)))


class RxNormClient(NameResolver):
    """RxNav-backed NameResolver."""

    def __init__(self, session: Optional[requests.Session] = None, base_url: str = SERVICE_CONFIG.rxnorm_base_url):
        self.session = session or make_session()
        self.base_url = base_url.rstrip('/')

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return get_json(self.session, f"{self.base_url}{path}", params=params)

    def resolve(self, drug_or_ndc: str) -> Resolution:
        if not drug_or_ndc or not drug_or_ndc.strip():
            return UNRESOLVED

        term = drug_or_ndc.strip()

        if looks_like_ndc(term):
            rxcui = self.lookup_ndc(term)
        else:
            rxcui = self.lookup_exact(term)

        if rxcui:
            logger.info(f"RxNorm exact match for '{term}': RxCUI {rxcui}")
            props = self.get_properties(rxcui)
            return Resolution(
                rxcui=rxcui,
                name=props.get('name') or term,
                strength=props.get('strength'),
                form=props.get('dosageForm'),
                candidates=1,
            )

        return self.lookup_approximate(term)

    def lookup_exact(self, name: str) -> Optional[str]:
        data = self._get('/REST/rxcui.json', {'name': name})
        ids = section(data, 'idGroup').get('rxnormId')
        return str(ids[0]) if isinstance(ids, list) and ids else None

    def lookup_ndc(self, ndc: str) -> Optional[str]:
        data = self._get('/REST/rxcui.json', {'idtype': 'NDC', 'id': ndc.replace('-', '')})
        ids = section(data, 'idGroup').get('rxnormId')
        return str(ids[0]) if isinstance(ids, list) and ids else None

    def lookup_approximate(self, term: str) -> Resolution:
        data = self._get('/REST/approximateTerm.json', {
            'term': term,
            'maxEntries': SERVICE_CONFIG.approximate_max_entries,
        })
        raw = object_list(section(data, 'approximateGroup'), 'candidate')
        ranked = sort_approximate_candidates(raw)
        if not ranked:
            logger.info(f"RxNorm found no match for '{term}'")
            return UNRESOLVED

        best = ranked[0]
        rxcui = str(best['rxcui'])
        logger.info(f"RxNorm approximate match for '{term}': RxCUI {rxcui} ({len(ranked)} candidates)")

        props = self.get_properties(rxcui)
        return Resolution(
            rxcui=rxcui,
            name=props.get('name') or best.get('name') or term,
            strength=props.get('strength'),
            form=props.get('dosageForm'),
            candidates=len(ranked),
        )

    def get_properties(self, rxcui: str) -> Dict[str, Any]:
        """Concept properties, or {} when the lookup fails."""
        try:
            data = self._get(f'/REST/rxcui/{rxcui}/properties.json')
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"RxNorm properties lookup failed for {rxcui}: {e}")
            return {}
        return section(data, 'properties')
