"""Tests for CPU core parsing and eligibility."""

import pytest

from pricetracker.detect.eligibility import EligibilityPolicy, is_eligible
from pricetracker.normalize.cpu import cores_for_model, model_number, parse_cpu_cores


def test_explicit_field_wins():
    assert parse_cpu_cores("AMD EPYC 9254", explicit=32) == 32


def test_cores_written_in_descriptor():
    assert parse_cpu_cores("AMD EPYC 7543 (32c/64t)") == 32
    assert parse_cpu_cores("AMD EPYC 9124 16-Core Processor") == 16
    assert parse_cpu_cores("2x AMD EPYC 9754 128 cores") == 128


def test_model_table_lookup():
    assert parse_cpu_cores("AMD EPYC 9354P") == 32
    assert parse_cpu_cores("amd epyc 4464p") == 12
    assert parse_cpu_cores("AMD EPYC 9455") == 48


def test_unknown_model_uses_default(caplog):
    """Falling back to the default is logged."""
    with caplog.at_level("WARNING"):
        assert parse_cpu_cores("Intel Xeon Gold", default=16) == 16
    assert "using default of 16" in caplog.text


def test_model_number_and_suffix_fallback():
    assert model_number("AMD EPYC 9354P @ 3.25GHz") == "9354P"
    assert model_number("no model here") is None
    assert cores_for_model("9254X") == 24
    assert cores_for_model("1234") is None


@pytest.mark.parametrize(
    "descriptor",
    [
        "AMD EPYC 9254",
        "amd epyc 4464p",
        "AMD EPYC-9654 96C",
        "2x AMD EPYC 9354P",
        "AMD EPYC Genoa 32 cores",
    ],
)
def test_eligible_generations(descriptor):
    assert is_eligible(descriptor)


@pytest.mark.parametrize(
    "descriptor",
    [
        "AMD EPYC 7543",
        "AMD Ryzen 9 7950X",
        "Intel Xeon E-2388G",
        "",
        "AMD 9254",
    ],
)
def test_ineligible_generations(descriptor):
    assert not is_eligible(descriptor)


def test_legacy_series_when_included():
    policy = EligibilityPolicy(include_legacy=True)
    assert policy.is_eligible("AMD EPYC 7543")
    assert policy.is_eligible("AMD EPYC 9254")


def test_policy_from_config():
    policy = EligibilityPolicy.from_config(
        {"family": "EPYC", "modern_series": ["9"], "codenames": ["Turin"]}
    )
    assert policy.is_eligible("AMD EPYC 9655")
    assert not policy.is_eligible("AMD EPYC 4464P")
    assert policy.is_eligible("epyc turin 64c")
