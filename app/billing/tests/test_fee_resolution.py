"""
Tests for FeeConfig and visit fee resolution from configuration rows.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from billing.fees import resolve_fee_config, resolve_visit_fee
from billing.models import GlobalFees
from billing.tests.factories import (
    ClinicFactory,
    FeeTierFactory,
    GlobalFeesFactory,
    MedicalCompanyFactory,
    TreatmentFactory,
)
from core.exceptions import ComputationError


@pytest.mark.django_db
class TestResolveFeeConfig:
    def test_uses_global_defaults(self, global_fees):
        config = resolve_fee_config(ClinicFactory())

        assert config.platform_fee_percent == Decimal("10.00")
        assert config.processor_fee_percent == Decimal("3.00")
        assert config.clinician_flat_fee == Decimal("15.00")

    def test_tier_overrides_platform_percent_only(self, global_fees):
        clinic = ClinicFactory(fee_tier=FeeTierFactory(platform_fee_percent=Decimal("8.00")))

        config = resolve_fee_config(clinic)

        assert config.platform_fee_percent == Decimal("8.00")
        assert config.processor_fee_percent == Decimal("3.00")

    def test_tier_without_percent_keeps_global(self, global_fees):
        clinic = ClinicFactory(fee_tier=FeeTierFactory(platform_fee_percent=None))

        assert resolve_fee_config(clinic).platform_fee_percent == Decimal("10.00")

    def test_no_clinic_uses_global(self, global_fees):
        assert resolve_fee_config(None).platform_fee_percent == Decimal("10.00")

    def test_latest_active_row_wins(self):
        older = GlobalFeesFactory(platform_fee_percent=Decimal("5.00"))
        GlobalFees.objects.filter(pk=older.pk).update(
            created_at=timezone.now() - timedelta(days=1)
        )
        GlobalFeesFactory(platform_fee_percent=Decimal("12.00"))
        GlobalFeesFactory(platform_fee_percent=Decimal("50.00"), is_active=False)

        assert resolve_fee_config(None).platform_fee_percent == Decimal("12.00")

    def test_unconfigured_raises(self):
        with pytest.raises(ComputationError):
            resolve_fee_config(None)


@pytest.mark.django_db
class TestResolveVisitFee:
    def test_clinic_fee_for_state_visit_type(self):
        clinic = ClinicFactory(visit_type_fees={"synchronous": "45.00"})
        treatment = TreatmentFactory(clinic=clinic, visit_type_by_state={"CA": "synchronous"})

        fee = resolve_visit_fee(treatment, clinic, "ca")

        assert fee.visit_type == "synchronous"
        assert fee.amount == Decimal("45.00")

    def test_falls_back_to_medical_company(self):
        clinic = ClinicFactory(medical_company=MedicalCompanyFactory())
        treatment = TreatmentFactory(clinic=clinic, visit_type_by_state={"TX": "asynchronous"})

        fee = resolve_visit_fee(treatment, clinic, "TX")

        assert fee.amount == Decimal("15.00")

    def test_no_state_means_no_fee(self):
        treatment = TreatmentFactory(visit_type_by_state={"CA": "synchronous"})

        fee = resolve_visit_fee(treatment, treatment.clinic, None)

        assert fee.visit_type is None
        assert fee.amount == Decimal("0.00")

    def test_unconfigured_state_means_no_fee(self):
        treatment = TreatmentFactory(visit_type_by_state={"CA": "synchronous"})

        assert resolve_visit_fee(treatment, treatment.clinic, "NY").amount == Decimal("0.00")

    def test_unknown_visit_type_raises(self):
        treatment = TreatmentFactory(visit_type_by_state={"CA": "carrier_pigeon"})

        with pytest.raises(ComputationError):
            resolve_visit_fee(treatment, treatment.clinic, "CA")

    def test_malformed_fee_raises(self):
        clinic = ClinicFactory(visit_type_fees={"synchronous": "lots"})
        treatment = TreatmentFactory(clinic=clinic, visit_type_by_state={"CA": "synchronous"})

        with pytest.raises(ComputationError):
            resolve_visit_fee(treatment, clinic, "CA")
