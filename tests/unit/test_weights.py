# BSD 3-Clause License

# Copyright (c) 2025, Miguel Dovale

# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions are met:

# 1. Redistributions of source code must retain the above copyright notice, this
#    list of conditions and the following disclaimer.

# 2. Redistributions in binary form must reproduce the above copyright notice,
#    this list of conditions and the following disclaimer in the documentation
#    and/or other materials provided with the distribution.

# 3. Neither the name of the copyright holder nor the names of its
#    contributors may be used to endorse or promote products derived from
#    this software without specific prior written permission.

# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS"
# AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO, THE
# IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE ARE
# DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR CONTRIBUTORS BE LIABLE
# FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL
# DAMAGES (INCLUDING, BUT NOT LIMITED TO, PROCUREMENT OF SUBSTITUTE GOODS OR
# SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER
# CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY,
# OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE
# OF THIS SOFTWARE, EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.

# This software may be subject to U.S. export control laws. By accepting this
# software, the user agrees to comply with all applicable U.S. export laws and
# regulations. User has the responsibility to obtain export licenses, or other
# export authority as may be required before exporting such information to
# foreign countries or providing access to foreign persons.
#
import logging

import pytest
import numpy as np
import pandas as pd

from mtsphere.errors import DimensionError, InvalidParameterError, SingularCovarianceError
from mtsphere.weights import (
    VarOptResult,
    sh_mt_var_opt,
    solve_min_variance,
    var_opt_from_covariance,
)


def test_identity_covariance_gives_equal_weights():
    res = var_opt_from_covariance(2.5 * np.eye(4))
    expected = 2.5 / np.arange(1, 5)
    np.testing.assert_allclose(res.var_opt, expected, rtol=1e-13)
    np.testing.assert_allclose(res.var_unit, expected, rtol=1e-13)
    for k in range(1, 5):
        np.testing.assert_allclose(res.weight_opt[:k, k - 1], 1.0 / k, rtol=1e-13)
        assert np.all(res.weight_opt[k:, k - 1] == 0.0)


def test_diagonal_covariance_inverse_variance_weights():
    d = np.array([1.0, 2.0, 4.0])
    res = var_opt_from_covariance(np.diag(d))
    inv = 1.0 / d
    assert res.var_opt[-1] == pytest.approx(1.0 / inv.sum(), rel=1e-13)
    np.testing.assert_allclose(res.weight_opt[:, -1], inv / inv.sum(), rtol=1e-13)
    assert res.var_unit[-1] == pytest.approx(d.sum() / 9.0, rel=1e-13)


def test_weights_sum_to_one_and_beat_equal_weighting(rng):
    a = rng.normal(size=(6, 6))
    F = a @ a.T + 6.0 * np.eye(6)
    res = var_opt_from_covariance(F)
    assert res.kmax == 6
    np.testing.assert_allclose(res.weight_opt.sum(axis=0), 1.0, rtol=1e-12)
    assert np.all(res.var_opt <= res.var_unit * (1.0 + 1e-12))
    assert np.all(np.diff(res.var_opt) <= 1e-12 * res.var_opt[0])
    # each k is solved on its own slice
    w3, v3 = solve_min_variance(F[:3, :3])
    np.testing.assert_allclose(res.weight_opt[:3, 2], w3, rtol=1e-12)
    assert res.var_opt[2] == pytest.approx(v3, rel=1e-12)


def test_optional_outputs():
    res = var_opt_from_covariance(np.eye(3), kmax=2, return_weights=False)
    assert res.weight_opt is None
    assert res.unweighted_covar is None
    assert res.kmax == 2


def test_singular_covariance_raises():
    F = np.ones((3, 3))
    with pytest.raises(SingularCovarianceError) as excinfo:
        var_opt_from_covariance(F)
    assert excinfo.value.k == 2
    assert isinstance(excinfo.value, np.linalg.LinAlgError)


def test_clip_stops_at_last_good_k(caplog):
    F = np.ones((3, 3))
    with caplog.at_level(logging.WARNING, logger="mtsphere"):
        res = var_opt_from_covariance(F, clip=True)
    assert res.kmax == 1
    assert res.weight_opt.shape == (1, 1)
    assert "Clipping" in caplog.text


def test_non_finite_covariance_raises():
    F = np.eye(2)
    F[1, 1] = np.nan
    with pytest.raises(SingularCovarianceError):
        var_opt_from_covariance(F)


def test_shape_and_symmetry_checks():
    with pytest.raises(DimensionError):
        var_opt_from_covariance(np.eye(3)[:2])
    with pytest.raises(DimensionError):
        var_opt_from_covariance(np.eye(3), kmax=4)
    with pytest.raises(InvalidParameterError):
        var_opt_from_covariance(np.eye(3), kmax=0)
    with pytest.raises(InvalidParameterError):
        var_opt_from_covariance(np.array([[1.0, 0.5], [0.2, 1.0]]))


def test_rcond_threshold():
    F = np.diag([1.0, 1e-6])
    var_opt_from_covariance(F)
    with pytest.raises(SingularCovarianceError):
        var_opt_from_covariance(F, rcond=1e-3)


def test_to_dataframe():
    res = var_opt_from_covariance(np.diag([1.0, 2.0]))
    df = res.to_dataframe()
    assert isinstance(df, pd.DataFrame)
    assert df.index.name == "k"
    assert list(df.columns) == ["var_opt", "var_unit", "gain"]
    assert np.all(df["gain"] >= 1.0 - 1e-12)


def test_constant_window_var_opt():
    res = sh_mt_var_opt(5, np.array([1.0]), np.ones(6))
    assert isinstance(res, VarOptResult)
    assert res.var_opt[0] == pytest.approx(2.0 / 11.0, rel=1e-12)
    assert res.var_unit[0] == pytest.approx(2.0 / 11.0, rel=1e-12)
    assert res.weight_opt[0, 0] == pytest.approx(1.0)
    np.testing.assert_allclose(res.unweighted_covar, [[2.0 / 11.0]], rtol=1e-12)
    assert sh_mt_var_opt(5, np.array([1.0]), np.ones(6), return_covariance=False).unweighted_covar is None


def test_cap_tapers_flat_spectrum(cap_tapers):
    """Well-concentrated cap tapers on a white spectrum: gains are modest."""
    res = sh_mt_var_opt(
        10,
        cap_tapers["tapers"],
        np.ones(16),
        kmax=10,
        taper_order=cap_tapers["taper_order"],
    )
    assert res.kmax == 10
    assert np.all(np.diff(res.var_opt) < 0.0)
    assert np.all(res.var_opt <= res.var_unit * (1.0 + 1e-12))
    np.testing.assert_allclose(res.weight_opt.sum(axis=0), 1.0, rtol=1e-10)
    assert res.var_unit[-1] / res.var_opt[-1] < 2.0

    diag_only = sh_mt_var_opt(
        10, cap_tapers["tapers"], np.ones(16), kmax=10,
        taper_order=cap_tapers["taper_order"], nocross=True,
    )
    np.testing.assert_allclose(
        np.diag(diag_only.unweighted_covar), np.diag(res.unweighted_covar), rtol=1e-12
    )


def test_cap_tapers_white_spectrum_degree_20(cap_tapers):
    """
    L=20, Lt=5, kmax=10 on a white spectrum: the variance keeps falling with
    every added taper and the optimal weights stay within 75% of 1/k.
    """
    res = sh_mt_var_opt(
        20,
        cap_tapers["tapers"],
        np.ones(26),
        kmax=10,
        taper_order=cap_tapers["taper_order"],
    )
    assert res.kmax == 10
    assert np.all(np.diff(res.var_opt) < 0.0)
    assert np.all(res.var_opt <= res.var_unit * (1.0 + 1e-12))
    for k in range(1, 11):
        w = res.weight_opt[:k, k - 1]
        assert w.sum() == pytest.approx(1.0, rel=1e-10)
        assert np.max(np.abs(w * k - 1.0)) < 0.75
