"""
Batch Calculation
=================

Runs the dispense pipeline over a table of prescriptions.

Input columns: drug_or_ndc, sig, days_supply. One output row per input row;
rows that fail input validation are reported with status 'invalid' rather
than stopping the batch.
"""

import logging
from typing import Any, Dict, List, Optional

import pandas as pd
from tqdm import tqdm

from .pipeline import CalculationRecord, DispensePipeline
from .validation.input_validator import InvalidCalculationInput

logger = logging.getLogger(__name__)

INPUT_COLUMNS = ['drug_or_ndc', 'sig', 'days_supply']

RESULT_COLUMNS = [
    'drug_or_ndc',
    'sig',
    'days_supply',
    'status',
    'dose',
    'dose_unit',
    'frequency_per_day',
    'route',
    'dosage_form',
    'rxcui',
    'quantity_value',
    'quantity_unit',
    'selected_ndc',
    'selected_product',
    'package_description',
    'package_count',
    'candidate_count',
    'sig_complete',
    'warning_types',
    'warning_count',
    'ai_notes',
    'error',
]


def _days_supply(value: Any) -> Any:
    """Coerce whole-number floats from CSV (30.0) to int; leave anything else for validation."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if hasattr(value, 'item'):
        return _days_supply(value.item())
    return value


def _text(value: Any) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ''
    return str(value)


def record_to_row(record: CalculationRecord) -> Dict[str, Any]:
    """Flatten a calculation record into one result row."""
    sig = record.normalized_sig
    selected = record.selected_ndc
    warnings = record.display_warnings()

    return {
        'drug_or_ndc': record.request.drug_or_ndc,
        'sig': record.request.sig,
        'days_supply': record.request.days_supply,
        'status': record.status,
        'dose': sig.dose if sig else None,
        'dose_unit': sig.dose_unit if sig else None,
        'frequency_per_day': sig.frequency_per_day if sig else None,
        'route': sig.route if sig else None,
        'dosage_form': sig.dosage_form if sig else None,
        'rxcui': sig.rxcui if sig else None,
        'quantity_value': record.quantity.quantity_value if record.quantity else None,
        'quantity_unit': record.quantity.quantity_unit if record.quantity else None,
        'selected_ndc': selected.ndc if selected else None,
        'selected_product': selected.product_name if selected else None,
        'package_description': selected.package_description if selected else None,
        'package_count': record.multi_pack.package_count if record.multi_pack else None,
        'candidate_count': len(record.candidates) if record.candidates is not None else 0,
        'sig_complete': bool(sig) and all(
            v is not None for v in (sig.dose, sig.dose_unit, sig.frequency_per_day)
        ),
        'warning_types': ",".join(w.key[0] for w in warnings),
        'warning_count': len(warnings),
        'ai_notes': record.ai_notes,
        'error': None,
    }


def _invalid_row(drug: str, sig: str, days_supply: Any, error: InvalidCalculationInput) -> Dict[str, Any]:
    row = {col: None for col in RESULT_COLUMNS}
    row.update({
        'drug_or_ndc': drug,
        'sig': sig,
        'days_supply': days_supply,
        'status': 'invalid',
        'candidate_count': 0,
        'sig_complete': False,
        'warning_types': '',
        'warning_count': 0,
        'error': str(error),
    })
    return row


def calculate_batch(
    frame: pd.DataFrame,
    pipeline: DispensePipeline,
    show_progress: bool = True,
) -> pd.DataFrame:
    """
    Run the pipeline for every row.

    Args:
        frame: DataFrame with drug_or_ndc, sig and days_supply columns
        pipeline: Configured DispensePipeline
        show_progress: Show a tqdm progress bar

    Returns:
        DataFrame with RESULT_COLUMNS, in input order
    """
    missing = [c for c in INPUT_COLUMNS if c not in frame.columns]
    if missing:
        raise ValueError(f"Input is missing columns: {', '.join(missing)}")

    rows: List[Dict[str, Any]] = []
    iterator = frame[INPUT_COLUMNS].itertuples(index=False)
    if show_progress:
        iterator = tqdm(iterator, desc="Calculating", total=len(frame))

    for drug, sig, days in iterator:
        drug, sig, days = _text(drug), _text(sig), _days_supply(days)
        try:
            record = pipeline.run(drug, sig, days)
        except InvalidCalculationInput as e:
            logger.warning(f"Skipping invalid row ({drug!r}): {e}")
            rows.append(_invalid_row(drug, sig, days, e))
            continue
        rows.append(record_to_row(record))

    return pd.DataFrame(rows, columns=RESULT_COLUMNS)


# =============================================================================
# STATISTICS
# =============================================================================

def _rate(count: int, total: int) -> float:
    return count / total if total > 0 else 0


def get_calculation_stats(results: pd.DataFrame) -> Dict[str, Any]:
    """
    Summarize a batch result.

    Args:
        results: Output of calculate_batch

    Returns:
        Dictionary with totals, rates and warning counts by type
    """
    total = len(results)
    valid = results[results['status'] != 'invalid'] if total else results

    warning_counts: Dict[str, int] = {}
    for types in valid['warning_types'] if len(valid) else []:
        for warning_type in filter(None, str(types).split(',')):
            warning_counts[warning_type] = warning_counts.get(warning_type, 0) + 1

    n_valid = len(valid)
    return {
        'total': total,
        'invalid': total - n_valid,
        'sig_complete_rate': _rate(int(valid['sig_complete'].sum()) if n_valid else 0, n_valid),
        'quantity_rate': _rate(int(valid['quantity_value'].notna().sum()) if n_valid else 0, n_valid),
        'selection_rate': _rate(int(valid['selected_ndc'].notna().sum()) if n_valid else 0, n_valid),
        'warnings_by_type': warning_counts,
    }


def load_batch_input(path: str, nrows: Optional[int] = None) -> pd.DataFrame:
    """Read a CSV batch file."""
    return pd.read_csv(path, nrows=nrows)
