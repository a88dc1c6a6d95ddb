"""
Dispense Calculator Runner
==========================

Single calculation:
    dispense-calc --drug "lisinopril 10 mg" --sig "Take 1 tablet by mouth once daily" --days 30

Batch from CSV (drug_or_ndc, sig, days_supply columns):
    dispense-calc --input prescriptions.csv --output results.csv

--offline skips RxNav/openFDA/OpenAI; only SIG parsing and quantity math run.
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from .batch import calculate_batch, get_calculation_stats, load_batch_input
from .pipeline import DispensePipeline
from .services.ai_ranker import OpenAiRanker
from .services.fda_ndc_client import FdaNdcClient
from .services.http import make_session
from .services.ports import OfflinePackageSearch, OfflineResolver
from .services.rxnorm_client import RxNormClient
from .validation.input_validator import InvalidCalculationInput

logger = logging.getLogger(__name__)


def build_pipeline(offline: bool = False, use_ai: bool = True) -> DispensePipeline:
    if offline:
        return DispensePipeline(OfflineResolver(), OfflinePackageSearch())

    session = make_session()
    ranker = OpenAiRanker() if use_ai else None
    if ranker is not None and not ranker.available:
        logger.info("OPENAI_API_KEY not set; AI ranking disabled")
        ranker = None
    return DispensePipeline(RxNormClient(session), FdaNdcClient(session), ranker)


def run_single(pipeline: DispensePipeline, drug: str, sig: str, days: int) -> int:
    print("=" * 60)
    print("Dispense Calculation")
    print("=" * 60)

    try:
        record = pipeline.run(drug, sig, days)
    except InvalidCalculationInput as e:
        print(e.result.report())
        return 2

    print(json.dumps(record.to_dict(), indent=2, default=str))

    print("\n" + "=" * 60)
    if record.quantity:
        print(f"Quantity: {record.quantity.quantity_value:g} {record.quantity.quantity_unit}")
    else:
        print("Quantity: could not be computed")
    if record.selected_ndc:
        print(f"NDC: {record.selected_ndc.ndc} ({record.selected_ndc.product_name})")
    for warning in record.display_warnings():
        print(f"  [{warning.to_dict()['severity']}] {warning.message}")
    print("=" * 60)
    return 0


def run_batch(pipeline: DispensePipeline, input_path: str, output_path: Optional[str], nrows: Optional[int]) -> int:
    print("=" * 60)
    print("Dispense Calculation: Batch")
    print("=" * 60)

    frame = load_batch_input(input_path, nrows=nrows)
    print(f"Loaded {len(frame):,} prescriptions from {input_path}")

    results = calculate_batch(frame, pipeline)
    stats = get_calculation_stats(results)

    if output_path:
        results.to_csv(output_path, index=False)
        print(f"Saved results to {output_path}")

    print("\n" + "=" * 60)
    print("SUMMARY")
    print("=" * 60)
    print(f"Total: {stats['total']:,} ({stats['invalid']:,} invalid)")
    print(f"Complete SIG: {stats['sig_complete_rate']*100:.1f}%")
    print(f"Quantity computed: {stats['quantity_rate']*100:.1f}%")
    print(f"NDC selected: {stats['selection_rate']*100:.1f}%")
    for warning_type, n in sorted(stats['warnings_by_type'].items()):
        print(f"  {warning_type}: {n:,}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Compute dispense quantities and match NDC packages")
    parser.add_argument('--drug', help='Drug name or NDC')
    parser.add_argument('--sig', help='Prescription instructions')
    parser.add_argument('--days', type=int, help="Days' supply")
    parser.add_argument('--input', help='CSV with drug_or_ndc, sig, days_supply columns')
    parser.add_argument('--output', help='CSV path for batch results')
    parser.add_argument('--n', type=int, default=None, help='Only read the first N batch rows')
    parser.add_argument('--offline', action='store_true', help='Skip external services')
    parser.add_argument('--no-ai', action='store_true', help='Skip AI ranking')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    if not args.input and (args.drug is None or args.sig is None or args.days is None):
        parser.error("either --input or all of --drug, --sig and --days are required")

    pipeline = build_pipeline(offline=args.offline, use_ai=not args.no_ai)

    if args.input:
        return run_batch(pipeline, args.input, args.output, args.n)
    return run_single(pipeline, args.drug, args.sig, args.days)


if __name__ == "__main__":
    sys.exit(main())
