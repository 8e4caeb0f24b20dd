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
"""
Covariance between single-taper spectral estimates at one degree.

For a Gaussian, stationary and isotropic field f with power spectrum Sff
(4pi-normalized coefficients), the degree-l coefficients of the windowed
field h_i f are Phi_i = K_i f, where

    K_i[a, b] = (1 / 4pi) * integral( Y_a * h_i * Y_b )

with a running over the 2l+1 harmonics of degree l and b over every harmonic
up to l + lwin. With D_b = Sff(l_b) / (2 l_b + 1) the cross-covariance of the
windowed coefficients is R_ij = K_i D K_j^T, and Isserlis' theorem gives the
covariance of the single-taper power estimates

    F[i, j] = 2 * sum_ab R_ij[a, b]**2.

The coupling integrals are evaluated with GLQ quadrature at bandwidth
l + lwin, which is exact for these band-limited products.
"""
import logging
import time
from typing import Optional, Sequence

import numpy as np

from .errors import AllocationError, DimensionError, InvalidParameterError
from .quadrature import QuadratureCache, resolve_cache
from .tapers import as_taper_bank
from .transforms import analyze, synthesize

logger = logging.getLogger(__name__)

__all__ = ["taper_covariance", "degree_basis"]


def degree_basis(l: int) -> np.ndarray:
    """
    Coefficient arrays of the 2l+1 real harmonics of degree l.

    Returns shape (2l+1, 2, l+1, l+1): cos terms m = 0..l first, then sin
    terms m = 1..l.
    """
    basis = np.zeros((2 * l + 1, 2, l + 1, l + 1), dtype=np.float64)
    for m in range(l + 1):
        basis[m, 0, l, m] = 1.0
    for m in range(1, l + 1):
        basis[l + m, 1, l, m] = 1.0
    return basis


def _sff_diagonal(sff: np.ndarray, lmax: int) -> np.ndarray:
    """D_b = Sff(l_b) / (2 l_b + 1) laid out like a (2, lmax+1, lmax+1) array."""
    l = np.arange(lmax + 1)
    per_degree = sff[: lmax + 1] / (2.0 * l + 1.0)
    d = np.zeros((2, lmax + 1, lmax + 1), dtype=np.float64)
    mask = l[None, :] <= l[:, None]
    d[0] = np.where(mask, per_degree[:, None], 0.0)
    d[1] = np.where(mask, per_degree[:, None], 0.0)
    d[1, :, 0] = 0.0
    return d.ravel()


def taper_covariance(
    l: int,
    tapers,
    sff,
    *,
    lwin: Optional[int] = None,
    kmax: Optional[int] = None,
    taper_order: Optional[Sequence[int]] = None,
    nocross: bool = False,
    cache: Optional[QuadratureCache] = None,
) -> np.ndarray:
    """
    Covariance matrix F of the single-taper power estimates at degree l.

    Parameters
    ----------
    l : int
        Spherical-harmonic degree of the estimates.
    tapers : array_like or TaperBank
        Taper bank in packed or spherical-cap form (geodesy normalization).
    sff : array_like
        Assumed global power spectrum, degrees 0..l+lwin.
    lwin : int, optional
        Taper bandwidth; inferred from the taper bank when omitted.
    kmax : int, optional
        Number of tapers to include; defaults to every taper in the bank.
    taper_order : sequence of int, optional
        Angular orders for spherical-cap tapers.
    nocross : bool, optional
        If True, only the diagonal is computed; off-diagonal entries are zero.
    cache : QuadratureCache, optional
        Quadrature cache; defaults to the calling thread's cache.

    Returns
    -------
    F : (kmax, kmax) ndarray
        Symmetric covariance matrix.
    """
    l = int(l)
    if l < 0:
        raise InvalidParameterError(f"Degree `l` must be non-negative, got {l}.")
    bank = as_taper_bank(tapers, lmaxt=lwin, taper_order=taper_order)
    kmax = bank.ntapers if kmax is None else int(kmax)
    if kmax < 1:
        raise InvalidParameterError(f"`kmax` must be at least 1, got {kmax}.")
    bank.require(kmax)

    lwin = bank.lmaxt
    lmaxmul = l + lwin
    sff = np.asarray(sff, dtype=np.float64).ravel()
    if sff.shape[0] < lmaxmul + 1:
        raise DimensionError(
            f"SFF must be dimensioned as (L+LWIN+1) where L and LWIN are {l} and {lwin}; "
            f"input dimension is {sff.shape[0]}."
        )
    if not np.all(np.isfinite(sff[: lmaxmul + 1])):
        logger.warning("Sff contains NaN/Inf; the covariance matrix may be undefined.")

    cache = resolve_cache(cache)
    t0 = time.perf_counter()
    try:
        d = _sff_diagonal(sff, lmaxmul)
        basis_grids = synthesize(degree_basis(l), lmaxmul, cache=cache)
        coupling = np.empty((kmax, 2 * l + 1, d.shape[0]), dtype=np.float64)
        for i in range(kmax):
            window = synthesize(bank.cilm(i), lmaxmul, cache=cache)
            coupling[i] = analyze(basis_grids * window, lmaxmul, cache=cache).reshape(2 * l + 1, -1)
    except MemoryError as exc:
        raise AllocationError(
            f"Could not allocate coupling matrices for l={l}, lwin={lwin}, kmax={kmax}."
        ) from exc

    F = np.zeros((kmax, kmax), dtype=np.float64)
    for i in range(kmax):
        weighted = coupling[i] * d
        cols = (i,) if nocross else range(i, kmax)
        for j in cols:
            R = weighted @ coupling[j].T
            F[i, j] = 2.0 * np.sum(R * R)
            F[j, i] = F[i, j]

    logger.debug(
        f"[covariance] l={l} lwin={lwin} kmax={kmax} nocross={bool(nocross)} "
        f"in {time.perf_counter() - t0:.4f} s"
    )
    return F
