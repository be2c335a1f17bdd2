"""Shared fixtures for the lease engine tests."""

from datetime import date

import pytest

from lease_calculations import LeaseTerms


def build_terms(**overrides) -> LeaseTerms:
    values = dict(
        lease_start_date=date(2024, 1, 1),
        lease_end_date=date(2026, 12, 31),
        lease_term_months=36,
        monthly_payment=1500,
        discount_rate_annual=8.5,
        contract_id="CT-001",
        currency_code="BRL",
    )
    values.update(overrides)
    return LeaseTerms(**values)


@pytest.fixture
def make_terms():
    """Factory for lease terms: a 36 month, 1,500/month lease at 8.5% unless overridden."""
    return build_terms


@pytest.fixture
def plain_terms():
    return build_terms()


@pytest.fixture
def example_terms():
    """The reference lease with an initial payment and a guaranteed residual value."""
    return build_terms(initial_payment=5000, guaranteed_residual_value=10000)
