"""Settings validation and the tax policy built from it."""

import pydantic
import pytest

from rhombick.config import Settings


def test_defaults_build_home_state_policy():
    policy = Settings().tax_policy
    assert policy.home_jurisdiction == "Karnataka"
    assert policy.local_rate_pair == (9.0, 9.0)
    assert policy.interstate_rate == 18.0


@pytest.mark.parametrize(
    "overrides",
    [
        {"local_tax_rates": (-1.0, 9.0)},
        {"local_tax_rates": (9.0, 101.0)},
        {"interstate_tax_rate": -5.0},
    ],
)
def test_out_of_range_rates_are_settings_errors(overrides):
    with pytest.raises(pydantic.ValidationError):
        Settings(**overrides)


def test_custom_rates_reach_policy():
    settings = Settings(home_state="Goa", local_tax_rates=(6.0, 6.0), interstate_tax_rate=12.0)
    assert settings.tax_policy.local_rate_pair == (6.0, 6.0)
    assert settings.tax_policy.interstate_rate == 12.0
