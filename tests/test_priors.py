import numpy as np
import pytest

from mashcor.errors import MashcorError, UndefinedPenaltyError
from mashcor.priors import PriorScheme, penalty, set_prior


def test_set_prior_schemes():
    assert np.allclose(set_prior(3, "nullbiased"), [10.0, 1.0, 1.0])
    assert np.allclose(set_prior(3, PriorScheme.NULLBIASED, nullweight=4.0), [4.0, 1.0, 1.0])
    assert np.allclose(set_prior(3, "Uniform"), [1.0, 1.0, 1.0])
    assert np.allclose(set_prior(2, np.array([2.0, 3.0])), [2.0, 3.0])


def test_set_prior_rejects_bad_input():
    with pytest.raises(ValueError, match="prior must be"):
        set_prior(3, "jeffreys")
    with pytest.raises(ValueError, match="wrong length"):
        set_prior(3, np.ones(2))


def test_penalty_nullbiased_value():
    prior = set_prior(3, "nullbiased")
    pi = np.array([0.5, 0.25, 0.25])
    assert penalty(prior, pi) == pytest.approx(9.0 * np.log(0.5))


def test_penalty_uniform_is_zero_even_with_zero_weights():
    prior = set_prior(4, "uniform")
    assert penalty(prior, np.array([0.0, 0.5, 0.5, 0.0])) == 0.0


def test_penalty_ignores_zero_weight_on_unpenalized_entries():
    prior = set_prior(3, "nullbiased")
    assert penalty(prior, np.array([1.0, 0.0, 0.0])) == 0.0


def test_penalty_zero_weight_on_penalized_entry_raises():
    prior = np.array([10.0, 1.0, 2.0])
    with pytest.raises(UndefinedPenaltyError, match="components 0, 2") as excinfo:
        penalty(prior, np.array([0.0, 1.0, 0.0]))
    assert excinfo.value.indices == [0, 2]
    assert isinstance(excinfo.value, MashcorError)
    assert isinstance(excinfo.value, ValueError)


def test_penalty_length_mismatch():
    with pytest.raises(ValueError, match="same length"):
        penalty(np.ones(3), np.ones(2) / 2)
