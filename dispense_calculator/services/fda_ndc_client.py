"""
openFDA NDC Client
==================

Searches the openFDA NDC directory and converts product records into
NdcCandidate objects (one per package).

openFDA answers 404 when a search has no matches; that is treated as an
empty result and the next search strategy is tried.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from .http import get_json, is_not_found, make_session, object_list
from .ports import PackageSearch
from ..config.dispense_config import SERVICE_CONFIG
from ..extractors.package_parser import candidates_from_fda_product
from ..models import NdcCandidate

logger = logging.getLogger(__name__)


def _quoted(value: str) -> str:
    return '"{}"'.format(value.replace('"', ''))


class FdaNdcClient(PackageSearch):
    """openFDA-backed PackageSearch."""

    def __init__(self, session: Optional[requests.Session] = None, url: str = SERVICE_CONFIG.fda_ndc_url):
        self.session = session or make_session()
        self.url = url

    def search(
        self,
        rxcui: Optional[str] = None,
        product_name: Optional[str] = None,
        ndc: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[NdcCandidate]:
        if ndc and ndc.strip():
            return self.search_by_ndc(ndc, rxcui=rxcui)

        if product_name and product_name.strip():
            return self.search_by_name(product_name, limit=limit, rxcui=rxcui)

        if rxcui:
            logger.info("openFDA cannot be searched by RxCUI alone; a product name is required")
        return []

    def search_by_ndc(self, ndc: str, rxcui: Optional[str] = None) -> List[NdcCandidate]:
        term = _quoted(ndc.strip())
        for field_name in ('product_ndc', 'package_ndc'):
            records = self._query(f"{field_name}:{term}", SERVICE_CONFIG.ndc_search_limit)
            if records:
                return self._to_candidates(records, rxcui)
        logger.info(f"openFDA found no packages for NDC {ndc}")
        return []

    def search_by_name(self, name: str, limit: Optional[int] = None, rxcui: Optional[str] = None) -> List[NdcCandidate]:
        limit = limit or SERVICE_CONFIG.default_search_limit
        name = name.strip()
        queries = (
            f"brand_name:{_quoted(name)}",
            f"generic_name:{_quoted(name)}",
            _quoted(name),
        )
        for query in queries:
            records = self._query(query, limit)
            if records:
                return self._to_candidates(records, rxcui)
        logger.info(f"openFDA found no packages for '{name}'")
        return []

    def _query(self, search: str, limit: int) -> List[Dict[str, Any]]:
        try:
            data = get_json(self.session, self.url, params={'search': search, 'limit': limit})
        except requests.HTTPError as e:
            if is_not_found(e):
                return []
            raise
        return object_list(data, 'results')

    def _to_candidates(self, records: List[Dict[str, Any]], rxcui: Optional[str]) -> List[NdcCandidate]:
        candidates = []
        for record in records:
            candidates.extend(candidates_from_fda_product(record, rxcui=rxcui))
        logger.info(f"openFDA returned {len(records)} products, {len(candidates)} packages")
        return candidates
