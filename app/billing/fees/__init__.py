"""
Checkout fee computations.

- calculator: pure five-way fee split
- resolution: FeeConfig from global defaults and clinic tier
- visit_fee: telehealth visit fee for the patient's state
"""

from billing.fees.calculator import FeeConfig, FeeSplit, LineItem, compute_split
from billing.fees.resolution import resolve_fee_config
from billing.fees.visit_fee import VisitFee, resolve_visit_fee

__all__ = [
    "FeeConfig",
    "FeeSplit",
    "LineItem",
    "VisitFee",
    "compute_split",
    "resolve_fee_config",
    "resolve_visit_fee",
]
