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
import matplotlib

matplotlib.use("Agg")

import numpy as np
import pyshtools as pysh
import pytest


def _plm_table(z, lmax):
    """4pi-normalized Legendre functions as a (len(z), lmax+1, lmax+1) table."""
    out = np.zeros((len(z), lmax + 1, lmax + 1))
    for i, zi in enumerate(z):
        p = pysh.legendre.PlmBar(lmax, zi)
        for l in range(lmax + 1):
            i0 = l * (l + 1) // 2
            out[i, l, : l + 1] = p[i0 : i0 + l + 1]
    return out


def _random_cilm(rng, lmax, decay=0.0):
    """Random (2, lmax+1, lmax+1) coefficients with unused slots zeroed."""
    cilm = rng.normal(size=(2, lmax + 1, lmax + 1))
    l = np.arange(lmax + 1)
    cilm *= l[None, None, :] <= l[None, :, None]
    cilm[1, :, 0] = 0.0
    if decay:
        cilm /= (1.0 + l[None, :, None]) ** decay
    return cilm


def _cap_tapers(lmaxt, theta_deg, k):
    """
    Best-concentrated tapers of a polar cap, (lmaxt+1, k) plus their orders.

    For each order the concentration matrix over the cap is diagonalized; the
    k eigenvectors with the largest eigenvalues are kept. Orders m > 0 are
    returned twice (cos and sin), as +m and -m.
    """
    z0 = np.cos(np.radians(theta_deg))
    x, wx = np.polynomial.legendre.leggauss(lmaxt + 1 + 8)
    z = 0.5 * (1.0 - z0) * x + 0.5 * (1.0 + z0)
    wz = 0.5 * (1.0 - z0) * wx
    plx = _plm_table(z, lmaxt)

    candidates = []
    for m in range(lmaxt + 1):
        P = plx[:, m:, m]
        D = np.einsum("i,ia,ib->ab", wz, P, P) / (2.0 if m == 0 else 4.0)
        evals, evecs = np.linalg.eigh(D)
        for j in range(evals.shape[0]):
            col = np.zeros(lmaxt + 1)
            col[m:] = evecs[:, j]
            candidates.append((evals[j], m, col))
            if m > 0:
                candidates.append((evals[j], -m, col))

    candidates.sort(key=lambda c: -c[0])
    chosen = candidates[:k]
    tapers = np.column_stack([c[2] for c in chosen])
    orders = np.array([c[1] for c in chosen], dtype=np.int64)
    evals = np.array([c[0] for c in chosen])
    return tapers, orders, evals


@pytest.fixture
def plm_table():
    return _plm_table


@pytest.fixture
def rng():
    return np.random.default_rng(seed=42)


@pytest.fixture
def random_cilm(rng):
    """Factory for random coefficient arrays."""
    def make(lmax, decay=0.0):
        return _random_cilm(rng, lmax, decay)
    return make


@pytest.fixture
def packed_tapers(rng):
    """Factory for random orthonormal packed taper banks ((lmaxt+1)**2, k)."""
    def make(lmaxt, k):
        q, _ = np.linalg.qr(rng.normal(size=((lmaxt + 1) ** 2, k)))
        return q
    return make


@pytest.fixture(scope="session")
def cap_tapers():
    """Spherical-cap tapers for a 60 degree cap with lmaxt=5 (k=10)."""
    tapers, orders, evals = _cap_tapers(lmaxt=5, theta_deg=60.0, k=10)
    return {"tapers": tapers, "taper_order": orders, "evals": evals, "lmaxt": 5}
