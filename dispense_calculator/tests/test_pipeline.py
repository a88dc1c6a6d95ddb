"""Tests for the resumable dispense pipeline (collaborators faked)."""

import json
import pytest
import sys
from dataclasses import replace
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from dispense_calculator.models import NdcCandidate
from dispense_calculator.services.ports import (
    AiRanking,
    CandidateRanker,
    NameResolver,
    PackageSearch,
    Resolution,
    UNRESOLVED,
)


# =============================================================================
# FAKES
# =============================================================================

class FakeResolver(NameResolver):
    def __init__(self, resolution=UNRESOLVED, error=None):
        self.resolution = resolution
        self.error = error
        self.calls = []

    def resolve(self, drug_or_ndc):
        self.calls.append(drug_or_ndc)
        if self.error is not None:
            raise self.error
        return self.resolution


class FailingResolver(NameResolver):
    """Resolver that must never be called."""

    def resolve(self, drug_or_ndc):
        raise AssertionError("resolver should not run")


class FakeSearch(PackageSearch):
    def __init__(self, by_name=None, by_ndc=None, error=None):
        self.by_name = by_name or {}
        self.by_ndc = by_ndc or {}
        self.error = error
        self.calls = []

    def search(self, rxcui=None, product_name=None, ndc=None, limit=None):
        self.calls.append({'rxcui': rxcui, 'product_name': product_name, 'ndc': ndc, 'limit': limit})
        if self.error is not None:
            raise self.error
        if ndc:
            return list(self.by_ndc.get(ndc, []))
        return list(self.by_name.get(product_name, []))


class FakeRanker(CandidateRanker):
    def __init__(self, error=None):
        self.error = error

    def rank(self, candidates, sig, request):
        if self.error is not None:
            raise self.error
        ranked = [c.with_score(0.9 - i * 0.1) for i, c in enumerate(reversed(candidates))]
        return AiRanking(ranked_candidates=ranked, rationale="Closest package size", top_candidate=ranked[0])


LISINOPRIL = Resolution(rxcui='314076', name='lisinopril', strength='10 mg', form='Oral Tablet', candidates=1)


def _package(ndc, count, active=True, end_date=None):
    return NdcCandidate(ndc=ndc, product_name="Lisinopril", package_description=f"{count} TABLET in 1 BOTTLE",
                        strength="10 mg", unit="TABLET", active=active, end_date=end_date)


PACKAGES = [_package('00000-0000-30', 30), _package('00000-0000-90', 90)]


def _pipeline(resolver=None, search=None, ranker=None):
    from dispense_calculator.pipeline import DispensePipeline
    return DispensePipeline(
        resolver=resolver or FakeResolver(LISINOPRIL),
        package_search=search or FakeSearch(by_name={'lisinopril': PACKAGES}),
        ranker=ranker,
    )


def _types(record):
    return [w.type.value for w in record.warnings]


# =============================================================================
# FULL RUNS
# =============================================================================

class TestFullRun:
    """End-to-end runs through every stage."""

    def test_happy_path(self):
        from dispense_calculator.pipeline import STAGE_ORDER

        record = _pipeline().run("lisinopril", "Take 1 tablet by mouth once daily", 30)

        assert record.status == 'ready'
        assert record.completed_stages == STAGE_ORDER
        assert record.normalized_sig.rxcui == '314076'
        assert record.normalized_sig.strength == '10 mg'
        assert record.selected_ndc.ndc == '00000-0000-30'
        assert record.selected_ndc.match_score is None
        assert record.quantity.quantity_value == 30
        assert record.package_size.package_size == 30
        assert record.multi_pack.package_count == 1
        assert record.warnings == []
        assert [c.ndc for c in record.candidates] == ['00000-0000-30', '00000-0000-90']
        assert all(c.match_score is not None for c in record.candidates)

    def test_input_is_trimmed(self):
        search = FakeSearch(by_name={'lisinopril': PACKAGES})
        record = _pipeline(search=search).run("  lisinopril ", " Take 1 tablet once daily ", 30)

        assert record.request.drug_or_ndc == "lisinopril"
        assert record.request.sig == "Take 1 tablet once daily"

    def test_invalid_input_raises(self):
        from dispense_calculator.validation import InvalidCalculationInput

        resolver = FakeResolver(LISINOPRIL)

        with pytest.raises(InvalidCalculationInput):
            _pipeline(resolver=resolver).run("lisinopril", "Take 1 tablet once daily", 0)

        assert resolver.calls == []

    def test_unparseable_sig(self):
        record = _pipeline().run("lisinopril", "asdf qwer", 30)

        assert record.status == 'ready'
        assert 'invalid_sig' in _types(record)
        assert record.warnings[0].field == 'sig'
        assert record.quantity is None
        assert record.selected_ndc is not None

    def test_multi_pack_and_overfill(self):
        record = _pipeline(search=FakeSearch(by_name={'lisinopril': [_package('x', 30)]})).run(
            "lisinopril", "Take 2 tablets by mouth twice daily", 90)

        assert record.quantity.quantity_value == 360
        assert record.multi_pack.package_count == 12
        assert _types(record) == ['overfill', 'other']


class TestResolveStage:
    """Tests for RxNorm enrichment."""

    def test_unresolved_warning(self):
        record = _pipeline(resolver=FakeResolver(UNRESOLVED)).run("lisinopril", "Take 1 tablet once daily", 30)

        assert _types(record) == ['unresolved_rxcui']
        assert record.warnings[0].field == 'drugOrNdc'
        assert record.normalized_sig.rxcui is None
        assert record.selected_ndc is not None

    def test_unresolved_warning_not_repeated(self):
        from dispense_calculator.pipeline import Stage

        pipeline = _pipeline(resolver=FakeResolver(UNRESOLVED))
        record = pipeline.run("lisinopril", "Take 1 tablet once daily", 30)
        again = pipeline.recompute(record, Stage.RESOLVED)

        assert _types(again).count('unresolved_rxcui') == 1

    def test_multiple_candidates_info(self):
        from dispense_calculator.models import Severity

        resolver = FakeResolver(replace(LISINOPRIL, candidates=4))
        record = _pipeline(resolver=resolver).run("lisinoprl", "Take 1 tablet once daily", 30)

        info = record.warnings[0]
        assert info.type.value == 'other'
        assert info.severity == Severity.INFO
        assert info.field == 'drugOrNdc'
        assert "(4)" in info.message

    def test_enrichment_fills_gaps_only(self):
        from dispense_calculator.models import NormalizedSig
        from dispense_calculator.pipeline import Stage, new_record

        record = new_record("lisinopril", "Take 1 tablet once daily", 30)
        record = replace(record, normalized_sig=NormalizedSig(strength='20 mg', dose=1, dose_unit='tablet'),
                         completed_stages=(Stage.PARSED,))

        resolved = _pipeline().run_stage(record, Stage.RESOLVED)

        assert resolved.normalized_sig.rxcui == '314076'
        assert resolved.normalized_sig.strength == '20 mg'
        assert resolved.normalized_sig.name == 'lisinopril'

    def test_existing_rxcui_skips_resolver(self):
        from dispense_calculator.models import NormalizedSig
        from dispense_calculator.pipeline import Stage, new_record

        record = replace(new_record("lisinopril", "Take 1 tablet once daily", 30),
                         normalized_sig=NormalizedSig(rxcui='1'), completed_stages=(Stage.PARSED,))

        resolved = _pipeline(resolver=FailingResolver()).run_stage(record, Stage.RESOLVED)

        assert Stage.RESOLVED in resolved.completed_stages
        assert resolved.normalized_sig.rxcui == '1'


class TestCandidateStage:
    """Tests for package search."""

    def test_ndc_input_searches_by_ndc(self):
        search = FakeSearch(by_ndc={'00000-0000-30': [PACKAGES[0]]})
        record = _pipeline(search=search).run("00000-0000-30", "Take 1 tablet once daily", 30)

        assert search.calls[0]['ndc'] == '00000-0000-30'
        assert search.calls[0]['rxcui'] == '314076'
        assert record.selected_ndc.ndc == '00000-0000-30'

    def test_falls_back_to_raw_input(self):
        resolver = FakeResolver(replace(LISINOPRIL, name='lisinopril 10 MG Oral Tablet'))
        search = FakeSearch(by_name={'lisinopril': PACKAGES})

        record = _pipeline(resolver=resolver, search=search).run("lisinopril", "Take 1 tablet once daily", 30)

        assert [c['product_name'] for c in search.calls] == ['lisinopril 10 MG Oral Tablet', 'lisinopril']
        assert len(record.candidates) == 2

    def test_no_candidates(self):
        from dispense_calculator.models import Severity

        record = _pipeline(search=FakeSearch()).run("lisinopril", "Take 1 tablet once daily", 30)

        assert record.candidates == []
        assert record.selected_ndc is None
        assert record.package_size is None
        assert record.quantity.quantity_value == 30
        assert _types(record) == ['missing_ndc']
        assert record.warnings[0].severity == Severity.ERROR
        assert record.status == 'ready'

    def test_inactive_selection_warned(self):
        only = _package('old', 30, active=False, end_date='20200101')
        record = _pipeline(search=FakeSearch(by_name={'lisinopril': [only]})).run(
            "lisinopril", "Take 1 tablet once daily", 30)

        assert record.selected_ndc.ndc == 'old'
        assert _types(record) == ['inactive_ndc']
        assert record.warnings[0].field == 'ndc'
        assert "20200101" in record.warnings[0].message


class TestCollaboratorFailures:
    """Collaborator errors degrade to neutral values."""

    def test_transport_errors_do_not_abort(self):
        import requests

        pipeline = _pipeline(
            resolver=FakeResolver(error=requests.ConnectionError("down")),
            search=FakeSearch(error=requests.Timeout("slow")),
        )
        record = pipeline.run("lisinopril", "Take 1 tablet once daily", 30)

        assert record.status == 'ready'
        assert _types(record) == ['unresolved_rxcui', 'missing_ndc']
        assert record.quantity.quantity_value == 30

    def test_programming_errors_propagate(self):
        pipeline = _pipeline(resolver=FakeResolver(error=KeyError("bug")))

        with pytest.raises(KeyError):
            pipeline.run("lisinopril", "Take 1 tablet once daily", 30)

    def test_ranker_error_ignored(self):
        import openai

        record = _pipeline(ranker=FakeRanker(error=openai.OpenAIError("quota"))).run(
            "lisinopril", "Take 1 tablet once daily", 30)

        assert record.status == 'ready'
        assert record.ai_notes is None
        assert record.selected_ndc.ndc == '00000-0000-30'

    def test_ranker_type_error_ignored(self):
        record = _pipeline(ranker=FakeRanker(error=TypeError("unhashable type: 'list'"))).run(
            "lisinopril", "Take 1 tablet once daily", 30)

        assert record.status == 'ready'
        assert record.ai_notes is None
        assert record.selected_ndc.ndc == '00000-0000-30'

    def test_malformed_ai_reply_does_not_abort(self):
        """A reply with a list-valued ndc leaves the deterministic selection alone."""
        from unittest.mock import MagicMock
        from dispense_calculator.services.ai_ranker import OpenAiRanker

        message = MagicMock()
        message.content = '{"rankings": [{"ndc": ["00000-0000-90"], "score": 0.9}]}'
        choice = MagicMock()
        choice.message = message
        client = MagicMock()
        client.chat.completions.create.return_value = MagicMock(choices=[choice])

        record = _pipeline(ranker=OpenAiRanker(api_key="sk-test", client=client)).run(
            "lisinopril", "Take 1 tablet once daily", 30)

        assert record.status == 'ready'
        assert record.selected_ndc.ndc == '00000-0000-30'
        assert record.ai_notes is None
        client.chat.completions.create.assert_called_once()


class TestAiRanking:
    """Tests for the optional ranker."""

    def test_ranker_reorders_but_keeps_selection(self):
        record = _pipeline(ranker=FakeRanker()).run("lisinopril", "Take 1 tablet once daily", 30)

        assert record.ai_notes == "Closest package size"
        assert [c.ndc for c in record.candidates] == ['00000-0000-90', '00000-0000-30']
        assert record.selected_ndc.ndc == '00000-0000-30'


# =============================================================================
# RESUME
# =============================================================================

class TestResume:
    """Tests for stage bookkeeping and resumption."""

    def test_next_missing_stage_progression(self):
        from dispense_calculator.pipeline import Stage, new_record, next_missing_stage

        pipeline = _pipeline()
        record = new_record("lisinopril", "Take 1 tablet once daily", 30)

        seen = []
        while next_missing_stage(record) is not None:
            stage = next_missing_stage(record)
            seen.append(stage)
            record = pipeline.run_stage(record, stage)

        assert seen == list(Stage)
        assert record.status == 'ready'

    def test_resume_runs_only_missing_stages(self):
        from dispense_calculator.pipeline import CalculationRecord, Stage, new_record

        record = new_record("lisinopril", "Take 1 tablet once daily", 30)
        first = _pipeline()
        record = first.run_stage(record, Stage.PARSED)
        record = first.run_stage(record, Stage.RESOLVED)
        assert record.status == 'pending'

        stored = json.loads(json.dumps(record.to_dict()))
        loaded = CalculationRecord.from_dict(stored)

        finished = _pipeline(resolver=FailingResolver()).resume(loaded)

        assert finished.status == 'ready'
        assert finished.normalized_sig.rxcui == '314076'
        assert finished.selected_ndc.ndc == '00000-0000-30'

    def test_inferred_stages(self):
        from dispense_calculator.models import NormalizedSig
        from dispense_calculator.pipeline import Stage, infer_completed_stages, new_record, next_missing_stage

        record = replace(new_record("x", "y", 30), normalized_sig=NormalizedSig(rxcui='1'), candidates=[])

        assert infer_completed_stages(record) == (
            Stage.PARSED, Stage.RESOLVED, Stage.CANDIDATES_FETCHED, Stage.SELECTED,
        )
        assert next_missing_stage(record) == Stage.QUANTITY_COMPUTED

    def test_new_record_starts_at_parse(self):
        from dispense_calculator.pipeline import Stage, new_record, next_missing_stage

        assert next_missing_stage(new_record("x", "y", 30)) == Stage.PARSED

    def test_recompute_from_selection(self):
        from dispense_calculator.pipeline import Stage

        resolver = FakeResolver(LISINOPRIL)
        pipeline = _pipeline(resolver=resolver)
        record = pipeline.run("lisinopril", "Take 1 tablet once daily", 30)

        longer = replace(record, request=replace(record.request, days_supply=90))
        recomputed = pipeline.recompute(longer, Stage.SELECTED)

        assert recomputed.selected_ndc.ndc == '00000-0000-90'
        assert recomputed.quantity.quantity_value == 90
        assert len(resolver.calls) == 1

    def test_recompute_selection_has_no_match_score(self):
        """Candidates carry scores after ranking; the reselected NDC does not."""
        from dispense_calculator.pipeline import Stage

        pipeline = _pipeline()
        record = pipeline.run("lisinopril", "Take 1 tablet once daily", 30)
        assert all(c.match_score is not None for c in record.candidates)

        recomputed = pipeline.recompute(record, Stage.SELECTED)

        assert recomputed.selected_ndc.ndc == '00000-0000-30'
        assert recomputed.selected_ndc.match_score is None

    def test_warnings_only_appended(self):
        from dispense_calculator.pipeline import Stage

        pipeline = _pipeline(search=FakeSearch())
        record = pipeline.run("lisinopril", "Take 1 tablet once daily", 30)
        again = pipeline.recompute(record, Stage.CANDIDATES_FETCHED)

        assert again.warnings[:len(record.warnings)] == record.warnings
        assert _types(again) == ['missing_ndc', 'missing_ndc']
        assert [w.type.value for w in again.display_warnings()] == ['missing_ndc']


class TestRecordSerialization:
    """Tests for CalculationRecord.to_dict / from_dict."""

    def test_round_trip(self):
        from dispense_calculator.pipeline import CalculationRecord

        record = _pipeline(search=FakeSearch(by_name={'lisinopril': [_package('x', 100)]})).run(
            "lisinopril", "Take 2 tablets by mouth twice daily", 90)

        data = json.loads(json.dumps(record.to_dict()))

        assert data['status'] == 'ready'
        assert data['warnings'][0]['type'] == 'overfill'
        assert CalculationRecord.from_dict(data) == record

    def test_pending_record_omits_missing_fields(self):
        from dispense_calculator.pipeline import new_record

        data = new_record("x", "y", 30).to_dict()

        assert data == {
            'request': {'drug_or_ndc': 'x', 'sig': 'y', 'days_supply': 30},
            'status': 'pending',
            'completed_stages': [],
            'warnings': [],
        }
