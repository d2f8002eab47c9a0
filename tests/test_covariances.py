import numpy as np
import pytest

from mashcor.covariances import cov_canonical, expand_cov, normalize_Ulist, validate_Ulist
from mashcor.data import mash_set_data


def test_cov_canonical_and_expand():
    Bhat = np.zeros((3, 4))
    data = mash_set_data(Bhat + 0.1, Shat=1.0)

    U = cov_canonical(data)
    assert "identity" in U
    assert "equal_effects" in U
    assert any(k.startswith("singleton_") for k in U)
    assert len(U) == 1 + 4 + 1 + 3

    xU = expand_cov(U, grid=np.array([0.5, 1.0]), usepointmass=True)
    assert len(xU) == 1 + 2 * len(U)
    assert np.allclose(xU[0], np.zeros((4, 4)))


def test_expand_cov_is_grid_major():
    U = [np.eye(2), np.ones((2, 2))]
    xU = expand_cov(U, grid=[0.5, 2.0], usepointmass=False)
    assert len(xU) == 4
    assert np.allclose(xU[0], 0.25 * np.eye(2))
    assert np.allclose(xU[1], 0.25 * np.ones((2, 2)))
    assert np.allclose(xU[2], 4.0 * np.eye(2))
    assert np.allclose(xU[3], 4.0 * np.ones((2, 2)))

    with pytest.raises(ValueError, match="grid"):
        expand_cov(U, grid=[])


def test_cov_canonical_rejects_unknown_method():
    data = mash_set_data(np.ones((2, 3)), Shat=1.0)
    with pytest.raises(ValueError, match="Unknown covariance method"):
        cov_canonical(data, methods=["identity", "pca"])
    assert list(cov_canonical(data, methods=["null"]).keys()) == ["null"]


def test_normalize_and_validate_ulist():
    U = {"a": 4.0 * np.eye(2), "b": np.zeros((2, 2))}
    normed = normalize_Ulist(U)
    assert np.allclose(normed[0], np.eye(2))
    assert np.allclose(normed[1], 0.0)

    validate_Ulist(normed, 2)
    with pytest.raises(ValueError, match="shape"):
        validate_Ulist([np.eye(3)], 2)
    with pytest.raises(ValueError, match="positive semidefinite"):
        validate_Ulist([np.array([[1.0, 2.0], [2.0, 1.0]])], 2)
