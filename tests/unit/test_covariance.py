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
import pytest
import numpy as np

from mtsphere.covariance import degree_basis, taper_covariance
from mtsphere.errors import DimensionError, InvalidParameterError
from mtsphere.quadrature import QuadratureCache


def test_degree_basis_layout():
    basis = degree_basis(2)
    assert basis.shape == (5, 2, 3, 3)
    assert basis[0, 0, 2, 0] == 1.0
    assert basis[2, 0, 2, 2] == 1.0
    assert basis[3, 1, 2, 1] == 1.0
    assert basis[4, 1, 2, 2] == 1.0
    assert basis.sum() == 5.0


@pytest.mark.parametrize("l", [0, 3, 8])
@pytest.mark.parametrize("level", [1.0, 3.0])
def test_constant_window(l, level):
    """An unlocalized window gives the global variance 2 Sff**2 / (2l+1)."""
    F = taper_covariance(l, np.array([1.0]), np.full(l + 1, level))
    assert F.shape == (1, 1)
    assert F[0, 0] == pytest.approx(2.0 * level**2 / (2 * l + 1), rel=1e-12)


def test_even_and_odd_windows_decorrelate():
    """Y00 and Y10 windows couple a degree to disjoint degrees."""
    tapers = np.zeros((4, 2))
    tapers[0, 0] = 1.0
    tapers[1, 1] = 1.0
    sff = np.ones(8)
    full = taper_covariance(5, tapers, sff)
    assert full[0, 1] == pytest.approx(0.0, abs=1e-14)
    assert full[1, 1] > 0.0
    diag = taper_covariance(5, tapers, sff, nocross=True)
    np.testing.assert_allclose(diag, full, atol=1e-14)


def test_nocross_leaves_off_diagonal_zero(packed_tapers):
    tapers = packed_tapers(3, 4)
    sff = 1.0 / (1.0 + np.arange(12)) ** 2
    full = taper_covariance(6, tapers, sff)
    diag = taper_covariance(6, tapers, sff, nocross=True)
    np.testing.assert_allclose(np.diag(diag), np.diag(full), rtol=1e-12)
    assert np.all(diag[~np.eye(4, dtype=bool)] == 0.0)


def test_covariance_is_symmetric_positive(packed_tapers):
    tapers = packed_tapers(2, 5)
    F = taper_covariance(4, tapers, np.ones(7), kmax=4)
    assert F.shape == (4, 4)
    np.testing.assert_allclose(F, F.T, rtol=1e-13)
    assert np.all(np.linalg.eigvalsh(F) > 0.0)


def test_cap_and_packed_forms_agree(cap_tapers):
    lmaxt = cap_tapers["lmaxt"]
    tapers = cap_tapers["tapers"][:, :3]
    orders = cap_tapers["taper_order"][:3]
    packed = np.zeros(((lmaxt + 1) ** 2, 3))
    for i, m in enumerate(orders):
        am = abs(m)
        for l in range(am, lmaxt + 1):
            packed[l * l + am if m >= 0 else l * l + l + am, i] = tapers[l, i]
    sff = np.ones(4 + lmaxt + 1)
    F_cap = taper_covariance(4, tapers, sff, taper_order=orders)
    F_packed = taper_covariance(4, packed, sff)
    np.testing.assert_allclose(F_cap, F_packed, rtol=1e-11, atol=1e-15)


def test_uses_explicit_cache():
    cache = QuadratureCache()
    taper_covariance(3, np.array([1.0, 0.0, 0.0, 0.0]), np.ones(5), cache=cache)
    assert cache.lmax == 4


def test_input_errors(packed_tapers):
    tapers = packed_tapers(2, 3)
    with pytest.raises(DimensionError):
        taper_covariance(4, tapers, np.ones(6))
    with pytest.raises(DimensionError):
        taper_covariance(4, tapers, np.ones(7), kmax=4)
    with pytest.raises(InvalidParameterError):
        taper_covariance(4, tapers, np.ones(7), kmax=0)
    with pytest.raises(InvalidParameterError):
        taper_covariance(-1, tapers, np.ones(7))


def test_non_finite_sff_warns(caplog):
    sff = np.ones(4)
    sff[1] = np.nan
    taper_covariance(2, np.array([1.0]), sff)
    assert "NaN/Inf" in caplog.text
