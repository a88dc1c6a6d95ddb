"""
External collaborators: RxNav name resolution, openFDA package search and
optional AI ranking.
"""

from .ports import (
    Resolution,
    UNRESOLVED,
    CalculationRequest,
    AiRanking,
    NameResolver,
    PackageSearch,
    CandidateRanker,
    OfflineResolver,
    OfflinePackageSearch,
)
from .results import ServiceResult, attempt
from .http import make_session, get_json
from .rxnorm_client import RxNormClient
from .fda_ndc_client import FdaNdcClient
from .ai_ranker import OpenAiRanker, parse_ai_response, build_ranking_prompt

__all__ = [
    'Resolution',
    'UNRESOLVED',
    'CalculationRequest',
    'AiRanking',
    'NameResolver',
    'PackageSearch',
    'CandidateRanker',
    'OfflineResolver',
    'OfflinePackageSearch',
    'ServiceResult',
    'attempt',
    'make_session',
    'get_json',
    'RxNormClient',
    'FdaNdcClient',
    'OpenAiRanker',
    'parse_ai_response',
    'build_ranking_prompt',
]
