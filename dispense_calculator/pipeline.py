"""
Dispense Pipeline
=================

Resumable, stage-by-stage calculation over a persisted record.

Stages run in a fixed order:

    PARSED -> RESOLVED -> CANDIDATES_FETCHED -> SELECTED -> QUANTITY_COMPUTED -> RANKED

`next_missing_stage` is a pure function of the record, so a caller can store
a partial record, load it later and `resume` it; only missing stages run.
Every stage returns a new record and only ever appends warnings.

Collaborator calls (name resolution, package search, AI ranking) are wrapped
with services.results.attempt; a failed call is logged and replaced by its
neutral value so the deterministic stages always finish.
"""

import logging
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import openai
import requests

from .config.dispense_config import SERVICE_CONFIG
from .extractors.package_parser import looks_like_ndc
from .extractors.sig_parser import get_partial_parse_warning, parse_sig
from .models import (
    CalculationWarning,
    MultiPackResult,
    NdcCandidate,
    NormalizedSig,
    PackageSize,
    QuantityResult,
    Severity,
    WarningType,
    dedupe_warnings,
)
from .processing.fill_detector import compute_quantity_with_warnings
from .processing.ndc_selector import rank_ndc_candidates, select_optimal_ndc
from .services.ports import (
    UNRESOLVED,
    CalculationRequest,
    CandidateRanker,
    NameResolver,
    PackageSearch,
)
from .services.results import attempt
from .validation.input_validator import validate_calculation_input

logger = logging.getLogger(__name__)

COLLABORATOR_ERRORS = (requests.RequestException, ValueError)
RANKER_ERRORS = COLLABORATOR_ERRORS + (openai.OpenAIError, TypeError, KeyError, AttributeError)


class Stage(str, Enum):
    PARSED = 'parsed'
    RESOLVED = 'resolved'
    CANDIDATES_FETCHED = 'candidates_fetched'
    SELECTED = 'selected'
    QUANTITY_COMPUTED = 'quantity_computed'
    RANKED = 'ranked'


STAGE_ORDER: Tuple[Stage, ...] = tuple(Stage)


# =============================================================================
# RECORD
# =============================================================================

@dataclass
class CalculationRecord:
    """
    One calculation and everything computed for it so far.

    `candidates` is None until packages have been searched; an empty list
    means the search ran and found nothing.
    """

    request: CalculationRequest
    normalized_sig: Optional[NormalizedSig] = None
    candidates: Optional[List[NdcCandidate]] = None
    selected_ndc: Optional[NdcCandidate] = None
    quantity: Optional[QuantityResult] = None
    package_size: Optional[PackageSize] = None
    multi_pack: Optional[MultiPackResult] = None
    warnings: List[CalculationWarning] = field(default_factory=list)
    ai_notes: Optional[str] = None
    completed_stages: Tuple[Stage, ...] = ()

    @property
    def status(self) -> str:
        return 'ready' if next_missing_stage(self) is None else 'pending'

    def display_warnings(self) -> List[CalculationWarning]:
        """Warnings deduplicated by (type, field) for display."""
        return dedupe_warnings(self.warnings)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'request': self.request.to_dict(),
            'status': self.status,
            'completed_stages': [Stage(s).value for s in self.completed_stages],
            'warnings': [w.to_dict() for w in self.warnings],
        }
        if self.normalized_sig is not None:
            data['normalized_sig'] = self.normalized_sig.to_dict()
        if self.candidates is not None:
            data['candidates'] = [c.to_dict() for c in self.candidates]
        if self.selected_ndc is not None:
            data['selected_ndc'] = self.selected_ndc.to_dict()
        for name in ('quantity', 'package_size', 'multi_pack'):
            value = getattr(self, name)
            if value is not None:
                data[name] = asdict(value)
        if self.ai_notes is not None:
            data['ai_notes'] = self.ai_notes
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CalculationRecord':
        def optional(key, build):
            value = data.get(key)
            return build(value) if value is not None else None

        return cls(
            request=CalculationRequest(**data['request']),
            normalized_sig=optional('normalized_sig', NormalizedSig.from_dict),
            candidates=optional('candidates', lambda items: [NdcCandidate.from_dict(c) for c in items]),
            selected_ndc=optional('selected_ndc', NdcCandidate.from_dict),
            quantity=optional('quantity', lambda d: QuantityResult(**d)),
            package_size=optional('package_size', lambda d: PackageSize(**d)),
            multi_pack=optional('multi_pack', lambda d: MultiPackResult(**d)),
            warnings=[CalculationWarning.from_dict(w) for w in data.get('warnings') or []],
            ai_notes=data.get('ai_notes'),
            completed_stages=tuple(Stage(s) for s in data.get('completed_stages') or []),
        )


# =============================================================================
# STAGE BOOKKEEPING
# =============================================================================

def _has_warning(record: CalculationRecord, warning_type: WarningType) -> bool:
    return any(WarningType(w.type) == warning_type for w in record.warnings)


def infer_completed_stages(record: CalculationRecord) -> Tuple[Stage, ...]:
    """Re-derive finished stages from persisted fields (records saved without stage marks)."""
    done = []
    sig = record.normalized_sig
    if sig is not None:
        done.append(Stage.PARSED)
        if sig.rxcui or _has_warning(record, WarningType.UNRESOLVED_RXCUI):
            done.append(Stage.RESOLVED)
    if record.candidates is not None:
        done.append(Stage.CANDIDATES_FETCHED)
        if record.selected_ndc is not None or not record.candidates:
            done.append(Stage.SELECTED)
        if record.ai_notes is not None or (
            record.candidates and all(c.match_score is not None for c in record.candidates)
        ):
            done.append(Stage.RANKED)
    if record.quantity is not None:
        done.append(Stage.QUANTITY_COMPUTED)
    return tuple(s for s in STAGE_ORDER if s in done)


def completed_stages(record: CalculationRecord) -> Tuple[Stage, ...]:
    """Explicit stage marks when present, otherwise inferred ones."""
    if record.completed_stages:
        return tuple(Stage(s) for s in record.completed_stages)
    return infer_completed_stages(record)


def next_missing_stage(record: CalculationRecord) -> Optional[Stage]:
    """First stage, in pipeline order, that has not completed. None when done."""
    done = set(completed_stages(record))
    for stage in STAGE_ORDER:
        if stage not in done:
            return stage
    return None


def _mark(record: CalculationRecord, stage: Stage, **changes) -> CalculationRecord:
    done = set(completed_stages(record)) | {stage}
    changes['completed_stages'] = tuple(s for s in STAGE_ORDER if s in done)
    return replace(record, **changes)


def _warn(warning_type: WarningType, message: str, severity: Severity = Severity.WARNING,
          field_name: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> CalculationWarning:
    return CalculationWarning(type=warning_type, message=message, severity=severity,
                              field=field_name, details=details)


def new_record(drug_or_ndc: str, sig: str, days_supply: int) -> CalculationRecord:
    return CalculationRecord(request=CalculationRequest(drug_or_ndc=drug_or_ndc, sig=sig, days_supply=days_supply))


# =============================================================================
# PIPELINE
# =============================================================================

class DispensePipeline:
    """Runs calculation stages against pluggable collaborators."""

    def __init__(
        self,
        resolver: NameResolver,
        package_search: PackageSearch,
        ranker: Optional[CandidateRanker] = None,
        search_limit: int = SERVICE_CONFIG.default_search_limit,
    ):
        self.resolver = resolver
        self.package_search = package_search
        self.ranker = ranker
        self.search_limit = search_limit
        self._handlers = {
            Stage.PARSED: self._parse,
            Stage.RESOLVED: self._resolve,
            Stage.CANDIDATES_FETCHED: self._fetch_candidates,
            Stage.SELECTED: self._select,
            Stage.QUANTITY_COMPUTED: self._compute_quantity,
            Stage.RANKED: self._rank,
        }

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def run(self, drug_or_ndc: str, sig: str, days_supply: int) -> CalculationRecord:
        """Validate input and run every stage. Raises InvalidCalculationInput on bad input."""
        validate_calculation_input(drug_or_ndc, sig, days_supply).raise_if_invalid()
        return self.resume(new_record(drug_or_ndc.strip(), sig.strip(), days_supply))

    def resume(self, record: CalculationRecord) -> CalculationRecord:
        """Run only the stages the record is still missing."""
        stage = next_missing_stage(record)
        while stage is not None:
            record = self.run_stage(record, stage)
            stage = next_missing_stage(record)
        return record

    def run_stage(self, record: CalculationRecord, stage: Stage) -> CalculationRecord:
        logger.info(f"Running stage {Stage(stage).value} for '{record.request.drug_or_ndc}'")
        return self._handlers[Stage(stage)](record)

    def recompute(self, record: CalculationRecord, from_stage: Stage) -> CalculationRecord:
        """
        Clear `from_stage` and every later stage, then resume.

        Earlier warnings are kept; display through display_warnings().
        """
        start = STAGE_ORDER.index(Stage(from_stage))
        dropped = set(STAGE_ORDER[start:])
        kept = tuple(s for s in completed_stages(record) if s not in dropped)

        changes: Dict[str, Any] = {'completed_stages': kept}
        if Stage.PARSED in dropped:
            changes['normalized_sig'] = None
        elif Stage.RESOLVED in dropped and record.normalized_sig is not None:
            changes['normalized_sig'] = replace(record.normalized_sig, rxcui=None, name=None,
                                                strength=None, form=None)
        if Stage.CANDIDATES_FETCHED in dropped:
            changes['candidates'] = None
        if Stage.SELECTED in dropped:
            changes['selected_ndc'] = None
        if Stage.QUANTITY_COMPUTED in dropped:
            changes.update(quantity=None, package_size=None, multi_pack=None)
        if Stage.RANKED in dropped:
            changes['ai_notes'] = None

        return self.resume(replace(record, **changes))

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def _parse(self, record: CalculationRecord) -> CalculationRecord:
        sig = parse_sig(record.request.sig)
        warnings = list(record.warnings)

        message = get_partial_parse_warning(sig)
        if message:
            warnings.append(_warn(WarningType.INVALID_SIG, message, field_name='sig'))

        return _mark(record, Stage.PARSED, normalized_sig=sig, warnings=warnings)

    def _resolve(self, record: CalculationRecord) -> CalculationRecord:
        sig = record.normalized_sig or NormalizedSig()
        if sig.rxcui:
            return _mark(record, Stage.RESOLVED)

        drug = record.request.drug_or_ndc
        resolution = attempt(
            "RxNorm resolution", self.resolver.resolve, drug,
            errors=COLLABORATOR_ERRORS, fallback=UNRESOLVED,
        ).value
        warnings = list(record.warnings)

        if resolution.resolved:
            logger.info(f"Resolved '{drug}' to RxCUI {resolution.rxcui} ({resolution.name})")
            # Resolver fills gaps only; parsed values win
            sig = replace(
                sig,
                rxcui=resolution.rxcui,
                name=sig.name or resolution.name,
                strength=sig.strength or resolution.strength,
                form=sig.form or resolution.form,
            )
            if resolution.candidates and resolution.candidates > 1:
                warnings.append(_warn(
                    WarningType.OTHER,
                    f"Multiple RxNorm candidates found ({resolution.candidates}). Selected best match.",
                    severity=Severity.INFO, field_name='drugOrNdc',
                ))
        elif not _has_warning(record, WarningType.UNRESOLVED_RXCUI):
            logger.info(f"Could not resolve '{drug}'")
            warnings.append(_warn(
                WarningType.UNRESOLVED_RXCUI,
                f'Could not resolve medication "{drug}" to an RxCUI. The calculation may be incomplete.',
                field_name='drugOrNdc',
            ))

        return _mark(record, Stage.RESOLVED, normalized_sig=sig, warnings=warnings)

    def _search(self, **params) -> List[NdcCandidate]:
        return attempt(
            "Package search", self.package_search.search,
            errors=COLLABORATOR_ERRORS, fallback=[], **params,
        ).value

    def _fetch_candidates(self, record: CalculationRecord) -> CalculationRecord:
        drug = record.request.drug_or_ndc
        rxcui = record.normalized_sig.rxcui if record.normalized_sig else None

        if looks_like_ndc(drug):
            candidates = self._search(ndc=drug, rxcui=rxcui, limit=self.search_limit)
        else:
            names = []
            for name in (record.normalized_sig.name if record.normalized_sig else None, drug):
                if name and name not in names:
                    names.append(name)
            candidates = []
            for name in names:
                candidates = self._search(product_name=name, rxcui=rxcui, limit=self.search_limit)
                if candidates:
                    break

        warnings = list(record.warnings)
        if not candidates:
            warnings.append(_warn(
                WarningType.MISSING_NDC,
                f'No NDC packages found for "{drug}".',
                severity=Severity.ERROR, field_name='ndc',
            ))
        logger.info(f"Found {len(candidates)} package candidates for '{drug}'")

        return _mark(record, Stage.CANDIDATES_FETCHED, candidates=list(candidates), warnings=warnings)

    def _select(self, record: CalculationRecord) -> CalculationRecord:
        selected = select_optimal_ndc(record.candidates or [], record.normalized_sig, record.request.days_supply)
        warnings = list(record.warnings)

        if selected is not None and not selected.active:
            warnings.append(_warn(
                WarningType.INACTIVE_NDC,
                f"Selected NDC {selected.ndc} is inactive (listing expired {selected.end_date or 'unknown'}).",
                field_name='ndc', details={'ndc': selected.ndc, 'endDate': selected.end_date},
            ))

        return _mark(record, Stage.SELECTED, selected_ndc=selected, warnings=warnings)

    def _compute_quantity(self, record: CalculationRecord) -> CalculationRecord:
        result = compute_quantity_with_warnings(
            record.normalized_sig, record.request.days_supply, record.selected_ndc,
        )
        return _mark(
            record, Stage.QUANTITY_COMPUTED,
            quantity=result.quantity,
            package_size=result.package_size,
            multi_pack=result.multi_pack,
            warnings=list(record.warnings) + result.warnings,
        )

    def _rank(self, record: CalculationRecord) -> CalculationRecord:
        candidates = rank_ndc_candidates(record.candidates or [], record.normalized_sig,
                                         record.request.days_supply)
        changes: Dict[str, Any] = {'candidates': candidates}

        if self.ranker is not None and candidates:
            ranking = attempt(
                "AI ranking", self.ranker.rank, candidates, record.normalized_sig, record.request,
                errors=RANKER_ERRORS, fallback=None,
            ).value
            if ranking is not None:
                changes['candidates'] = list(ranking.ranked_candidates)
                changes['ai_notes'] = ranking.rationale
                if record.selected_ndc is None and ranking.top_candidate is not None:
                    changes['selected_ndc'] = ranking.top_candidate

        return _mark(record, Stage.RANKED, **changes)
