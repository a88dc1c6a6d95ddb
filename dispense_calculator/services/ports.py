"""
Collaborator Ports
==================

Contracts for the external services the pipeline calls. The RxNav, openFDA
and OpenAI clients implement them; tests plug in fakes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..models import NdcCandidate, NormalizedSig


@dataclass(frozen=True)
class Resolution:
    """Name-resolution result. A None rxcui means unresolved."""

    rxcui: Optional[str] = None
    name: Optional[str] = None
    strength: Optional[str] = None
    form: Optional[str] = None
    candidates: Optional[int] = None

    @property
    def resolved(self) -> bool:
        return bool(self.rxcui)


UNRESOLVED = Resolution()


@dataclass(frozen=True)
class CalculationRequest:
    """Raw caller input."""

    drug_or_ndc: str
    sig: str
    days_supply: int

    def to_dict(self) -> Dict[str, Any]:
        return {'drug_or_ndc': self.drug_or_ndc, 'sig': self.sig, 'days_supply': self.days_supply}


@dataclass
class AiRanking:
    ranked_candidates: List[NdcCandidate] = field(default_factory=list)
    rationale: Optional[str] = None
    top_candidate: Optional[NdcCandidate] = None


class NameResolver(ABC):
    @abstractmethod
    def resolve(self, drug_or_ndc: str) -> Resolution: ...


class PackageSearch(ABC):
    @abstractmethod
    def search(
        self,
        rxcui: Optional[str] = None,
        product_name: Optional[str] = None,
        ndc: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[NdcCandidate]: ...


class CandidateRanker(ABC):
    """Optional ranker. Returning None means "not available"."""

    @abstractmethod
    def rank(
        self,
        candidates: List[NdcCandidate],
        sig: Optional[NormalizedSig],
        request: CalculationRequest,
    ) -> Optional[AiRanking]: ...


class OfflineResolver(NameResolver):
    """Resolver that never resolves (used with --offline)."""

    def resolve(self, drug_or_ndc: str) -> Resolution:
        return UNRESOLVED


class OfflinePackageSearch(PackageSearch):
    def search(self, rxcui=None, product_name=None, ndc=None, limit=None) -> List[NdcCandidate]:
        return []
