"""
AI Candidate Ranker
===================

Optional OpenAI-backed ranking of NDC candidates with a one-line rationale.

The ranker is best-effort: no API key or no candidates gives None, and an
unparseable reply gives None. API errors (openai.OpenAIError) propagate to
the caller, which treats them the same as "not available".
"""

import json
import logging
from typing import Any, Dict, List, Optional

from openai import OpenAI

from .ports import AiRanking, CalculationRequest, CandidateRanker
from ..config.dispense_config import SERVICE_CONFIG, get_openai_api_key
from ..models import NdcCandidate, NormalizedSig

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You are a pharmacy assistant helping to rank NDC (National Drug Code) candidates for "
    "prescriptions. Provide concise, one-line rationales for your top recommendation."
)


# =============================================================================
# PROMPT
# =============================================================================

def _or_na(value: Any) -> str:
    return "N/A" if value is None else str(value)


def build_ranking_prompt(
    candidates: List[NdcCandidate],
    sig: Optional[NormalizedSig],
    request: CalculationRequest,
) -> str:
    if sig is not None:
        sig_info = (
            f"Dose: {_or_na(sig.dose)} {sig.dose_unit or ''}, "
            f"Frequency: {_or_na(sig.frequency_per_day)}x/day, "
            f"Route: {_or_na(sig.route)}"
        )
    else:
        sig_info = "Not available"

    candidate_lines = "\n".join(
        f"{i}. NDC: {c.ndc}, Product: {c.product_name}, Strength: {_or_na(c.strength)}, "
        f"Unit: {_or_na(c.unit)}, Active: {'Yes' if c.active else 'No'}"
        for i, c in enumerate(candidates, start=1)
    )

    max_chars = SERVICE_CONFIG.ai_rationale_max_chars
    return f"""Rank these NDC candidates for a prescription:

Prescription Details:
- Drug: {request.drug_or_ndc}
- SIG: {request.sig}
- Days Supply: {request.days_supply}
- Parsed Info: {sig_info}

NDC Candidates:
{candidate_lines}

Please:
1. Rank the candidates from best to worst match (1 = best)
2. Assign a match score from 0.0 to 1.0 for each (1.0 = perfect match)
3. Provide a one-line rationale (max {max_chars} chars) for the top recommendation

Format your response as JSON:
{{
  "rankings": [{{"ndc": "12345-6789-01", "rank": 1, "score": 0.95, "rationale": "Best match because..."}}],
  "topRationale": "One-line explanation for top choice"
}}"""


# =============================================================================
# RESPONSE PARSING
# =============================================================================

def _strip_code_fence(content: str) -> str:
    text = content.strip()
    if "```json" in text:
        return text.split("```json", 1)[1].split("```", 1)[0].strip()
    if "```" in text:
        return text.split("```", 2)[1].strip()
    return text


def _truncate(text: Optional[str], max_chars: int) -> Optional[str]:
    if text and len(text) > max_chars:
        return f"{text[:max_chars - 3]}..."
    return text


def parse_ai_response(content: str, candidates: List[NdcCandidate]) -> Optional[AiRanking]:
    """
    Apply a model reply to the candidate list.

    Scores are clamped to [0, 1] and candidates re-sorted by score, keeping
    input order among equals. Returns None for malformed replies.
    """
    try:
        parsed = json.loads(_strip_code_fence(content))
    except ValueError as e:
        logger.info(f"AI ranking reply was not JSON: {e}")
        return None

    if not isinstance(parsed, dict):
        return None
    rankings = parsed.get('rankings')
    if not isinstance(rankings, list) or not rankings:
        return None

    by_ndc: Dict[str, Dict[str, Any]] = {}
    for entry in rankings:
        if not isinstance(entry, dict) or not isinstance(entry.get('ndc'), str) or entry.get('score') is None:
            continue
        try:
            score = min(1.0, max(0.0, float(entry['score'])))
        except (TypeError, ValueError):
            continue
        by_ndc[entry['ndc']] = {'score': score, 'rationale': entry.get('rationale')}

    scored = [c.with_score(by_ndc[c.ndc]['score'] if c.ndc in by_ndc else None) for c in candidates]
    ranked = sorted(scored, key=lambda c: -(c.match_score or 0.0))

    top = ranked[0] if ranked and ranked[0].match_score is not None else None

    rationale = parsed.get('topRationale')
    rationale = rationale.strip() if isinstance(rationale, str) else None
    if not rationale and top is not None:
        fallback = by_ndc[top.ndc].get('rationale')
        rationale = fallback.strip() if isinstance(fallback, str) else None

    return AiRanking(
        ranked_candidates=ranked,
        rationale=_truncate(rationale or None, SERVICE_CONFIG.ai_rationale_max_chars),
        top_candidate=top,
    )


# =============================================================================
# CLIENT
# =============================================================================

class OpenAiRanker(CandidateRanker):
    """CandidateRanker using an OpenAI chat completion."""

    def __init__(self, api_key: Optional[str] = None, model: str = SERVICE_CONFIG.ai_model, client=None):
        self.api_key = api_key or get_openai_api_key()
        self.model = model
        self._client = client

    @property
    def available(self) -> bool:
        return bool(self.api_key) or self._client is not None

    def _ensure_client(self):
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key, timeout=SERVICE_CONFIG.request_timeout * 3)
        return self._client

    def rank(
        self,
        candidates: List[NdcCandidate],
        sig: Optional[NormalizedSig],
        request: CalculationRequest,
    ) -> Optional[AiRanking]:
        if not candidates or not self.available:
            return None

        client = self._ensure_client()
        rsp = client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_ranking_prompt(candidates, sig, request)},
            ],
            temperature=SERVICE_CONFIG.ai_temperature,
            max_tokens=SERVICE_CONFIG.ai_max_tokens,
        )
        content = rsp.choices[0].message.content if rsp.choices else None
        if not content:
            return None

        result = parse_ai_response(content, candidates)
        if result is not None:
            logger.info(f"AI ranking scored {sum(c.match_score is not None for c in result.ranked_candidates)} "
                        f"of {len(candidates)} candidates")
        return result
