"""Unit tests for per-tier point pricing"""

import pytest
from fakedetector_accounts.config import Settings
from fakedetector_accounts.domain.exceptions import InvalidTierError
from fakedetector_accounts.domain.models import PlanTier
from fakedetector_accounts.domain.pricing import PlanPricing


def test_default_prices():
    pricing = PlanPricing()
    assert pricing.price_for(PlanTier.BASIC) == 75
    assert pricing.price_for(PlanTier.STANDARD) == 100
    assert pricing.price_for(PlanTier.BUSINESS) == 130


def test_free_points_cannot_be_priced():
    with pytest.raises(InvalidTierError):
        PlanPricing().price_for(PlanTier.FREE)


def test_amount_for_points_in_kobo():
    """Test 100 basic points cost 7500 NGN = 750000 kobo"""
    assert PlanPricing().amount_for_points(100, PlanTier.BASIC) == 750000


def test_points_for_amount_floors():
    """Test partial points are not granted"""
    pricing = PlanPricing()
    assert pricing.points_for_amount(750000, PlanTier.BASIC) == 100
    assert pricing.points_for_amount(759999, PlanTier.BASIC) == 100
    assert pricing.points_for_amount(1300000, PlanTier.BUSINESS) == 100
    assert pricing.points_for_amount(9999, PlanTier.STANDARD) == 0


def test_points_for_non_positive_amount():
    assert PlanPricing().points_for_amount(0, PlanTier.BASIC) == 0
    assert PlanPricing().points_for_amount(-500, PlanTier.BASIC) == 0


def test_pricing_from_settings():
    settings = Settings(_env_file=None, basic_point_price=50, standard_point_price=90, business_point_price=120)
    pricing = PlanPricing.from_settings(settings)

    assert pricing == PlanPricing(basic=50, standard=90, business=120)
