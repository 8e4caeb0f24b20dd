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
transforms.py — spherical-harmonic transforms on Gauss-Legendre grids
-----------------------------------------------------------------------------
Conventions
- Coefficient arrays `cilm` have shape (2, lmax+1, lmax+1): cilm[0] holds
  the cos(m*phi) terms and cilm[1] the sin(m*phi) terms. Entries with m > l
  and cilm[1, :, 0] are ignored.
- GLQ grids have shape (lmax+1, 2*lmax+1): latitudes at the Gauss-Legendre
  nodes (north to south), longitudes phi_k = 2*pi*k / (2*lmax+1).
- norm: 1 geodesy (4pi), 2 Schmidt semi-normalized, 3 unnormalized,
  4 orthonormalized. csphase: 1 excludes, -1 includes (-1)**m.
- The transforms themselves are pyshtools' (MakeGridGLQ / SHExpandGLQ);
  this module adds the cached quadrature, shape checks and batch axes.
-----------------------------------------------------------------------------
"""
from typing import Callable, Optional, Tuple

import numpy as np
import pyshtools as pysh

from ._config import NORM_NAMES, DEFAULT_NORM, DEFAULT_CSPHASE
from .errors import DimensionError, InvalidParameterError
from .quadrature import QuadratureCache, resolve_cache, quadrature_nodes_weights

__all__ = [
    "check_norm_csphase",
    "quadrature_nodes_weights",
    "synthesize",
    "analyze",
    "cross_power",
    "power_spectrum",
    "vector_to_cilm",
    "cilm_to_vector",
    "glq_longitudes",
]


def check_norm_csphase(norm: int, csphase: int) -> None:
    if norm not in NORM_NAMES:
        raise InvalidParameterError(
            "Parameter `norm` must be 1 (geodesy), 2 (Schmidt), 3 (unnormalized) "
            f"or 4 (orthonormalized). Input value is {norm!r}."
        )
    if csphase not in (1, -1):
        raise InvalidParameterError(
            f"Parameter `csphase` must be 1 (exclude) or -1 (include). Input value is {csphase!r}."
        )


def _as_coeffs(cilm, name: str = "cilm") -> np.ndarray:
    arr = np.asarray(cilm, dtype=np.float64)
    if arr.ndim < 3 or arr.shape[-3] != 2 or arr.shape[-1] != arr.shape[-2]:
        raise DimensionError(
            f"{name} must be dimensioned (..., 2, LMAX+1, LMAX+1); got shape {arr.shape}."
        )
    return arr


def _fit_degree(cilm: np.ndarray, lmax: int) -> np.ndarray:
    """Truncate or zero-pad the last two axes to lmax+1."""
    n = cilm.shape[-1]
    if n == lmax + 1:
        return cilm
    if n > lmax + 1:
        return cilm[..., : lmax + 1, : lmax + 1]
    out = np.zeros(cilm.shape[:-2] + (lmax + 1, lmax + 1), dtype=np.float64)
    out[..., :n, :n] = cilm
    return out


def _map_batch(func: Callable, arr: np.ndarray, core_ndim: int, out_core: Tuple[int, ...]) -> np.ndarray:
    """Apply `func` to every core block of `arr`, keeping the leading axes."""
    lead = arr.shape[: arr.ndim - core_ndim]
    out = np.empty(lead + out_core, dtype=np.float64)
    for idx in np.ndindex(*lead):
        out[idx] = func(arr[idx])
    return out


def glq_longitudes(lmax: int) -> np.ndarray:
    """Longitudes (radians) of a GLQ grid of bandwidth lmax."""
    nlon = 2 * int(lmax) + 1
    return 2.0 * np.pi * np.arange(nlon) / nlon


def synthesize(
    cilm,
    lmax: int,
    *,
    norm: int = DEFAULT_NORM,
    csphase: int = DEFAULT_CSPHASE,
    cache: Optional[QuadratureCache] = None,
) -> np.ndarray:
    """
    Evaluate a spherical-harmonic expansion on the GLQ grid of bandwidth lmax.

    Coefficients above lmax are ignored; missing ones are treated as zero.

    Parameters
    ----------
    cilm : (..., 2, L+1, L+1) array_like
        Real spherical-harmonic coefficients.
    lmax : int
        Bandwidth of the output grid.
    norm, csphase : int
        Normalization and phase convention of `cilm`.
    cache : QuadratureCache, optional
        Quadrature cache to use; defaults to the calling thread's cache.

    Returns
    -------
    grid : (..., lmax+1, 2*lmax+1) ndarray
    """
    check_norm_csphase(norm, csphase)
    lmax = int(lmax)
    entry = resolve_cache(cache).get(lmax)
    c = _fit_degree(_as_coeffs(cilm), lmax)

    def one(block):
        return pysh.expand.MakeGridGLQ(block, entry.nodes, lmax=lmax, norm=norm, csphase=csphase)

    return _map_batch(one, c, 3, (entry.nlat, entry.nlon))


def analyze(
    grid,
    lmax: int,
    *,
    norm: int = DEFAULT_NORM,
    csphase: int = DEFAULT_CSPHASE,
    cache: Optional[QuadratureCache] = None,
) -> np.ndarray:
    """
    Expand a GLQ grid into spherical-harmonic coefficients.

    Exact for grids of fields band-limited to lmax, and for products of
    fields whose bandwidths sum to at most lmax.

    Parameters
    ----------
    grid : (..., lmax+1, 2*lmax+1) array_like
    lmax : int
        Bandwidth of the grid.

    Returns
    -------
    cilm : (..., 2, lmax+1, lmax+1) ndarray
    """
    check_norm_csphase(norm, csphase)
    lmax = int(lmax)
    g = np.asarray(grid, dtype=np.float64)
    nlat, nlon = lmax + 1, 2 * lmax + 1
    if g.ndim < 2 or g.shape[-2:] != (nlat, nlon):
        raise DimensionError(
            f"GRID must be dimensioned (..., {nlat}, {nlon}) for LMAX={lmax}; "
            f"got shape {g.shape}."
        )
    entry = resolve_cache(cache).get(lmax)

    def one(block):
        return pysh.expand.SHExpandGLQ(block, entry.weights, entry.nodes, norm=norm, csphase=csphase)

    return _map_batch(one, g, 2, (2, lmax + 1, lmax + 1))


def cross_power(cilm1, cilm2, lmax: Optional[int] = None) -> np.ndarray:
    """
    Per-degree cross power sum_m (C1 C2 + S1 S2) for degrees 0..lmax.

    Both inputs must share the same normalization and phase convention; the
    sum is taken on the coefficients as given.
    """
    c1 = _as_coeffs(cilm1, "cilm1")
    c2 = _as_coeffs(cilm2, "cilm2")
    if c1.ndim != 3 or c2.ndim != 3:
        raise DimensionError("cross_power expects single (2, L+1, L+1) coefficient arrays.")
    lmax_avail = min(c1.shape[-1], c2.shape[-1]) - 1
    lmax = lmax_avail if lmax is None else int(lmax)
    if lmax < 0 or lmax > lmax_avail:
        raise DimensionError(
            f"LMAX={lmax} must lie in [0, {lmax_avail}] for inputs of shape "
            f"{c1.shape} and {c2.shape}."
        )
    # '4pi' with the 'power' convention is the plain sum over orders.
    return np.asarray(
        pysh.spectralanalysis.cross_spectrum(
            c1[:, : lmax + 1, : lmax + 1],
            c2[:, : lmax + 1, : lmax + 1],
            normalization="4pi",
            lmax=lmax,
            convention="power",
        ),
        dtype=np.float64,
    )


def power_spectrum(cilm, lmax: Optional[int] = None) -> np.ndarray:
    """Per-degree power sum_m (C**2 + S**2)."""
    return cross_power(cilm, cilm, lmax)


def vector_to_cilm(vector, lmax: int) -> np.ndarray:
    """
    Unpack a coefficient vector into a (2, lmax+1, lmax+1) array.

    Index l**2 + m holds the cos term (l, m) and index l**2 + l + m (m >= 1)
    the sin term.
    """
    lmax = int(lmax)
    v = np.asarray(vector, dtype=np.float64).ravel()
    n = (lmax + 1) ** 2
    if v.shape[0] < n:
        raise DimensionError(
            f"VECTOR must be dimensioned as ((LMAX+1)**2) where LMAX is {lmax}; "
            f"input dimension is {v.shape[0]}."
        )
    return np.asarray(pysh.shio.SHVectorToCilm(v[:n], lmax), dtype=np.float64)


def cilm_to_vector(cilm, lmax: Optional[int] = None) -> np.ndarray:
    """Pack a coefficient array; inverse of vector_to_cilm."""
    c = _as_coeffs(cilm)
    if c.ndim != 3:
        raise DimensionError("cilm_to_vector expects a single (2, L+1, L+1) array.")
    lmax = c.shape[-1] - 1 if lmax is None else int(lmax)
    if lmax > c.shape[-1] - 1:
        raise DimensionError(
            f"CILM must be dimensioned (2, {lmax + 1}, {lmax + 1}); got shape {c.shape}."
        )
    return np.asarray(
        pysh.shio.SHCilmToVector(np.ascontiguousarray(c[:, : lmax + 1, : lmax + 1]), lmax),
        dtype=np.float64,
    )
