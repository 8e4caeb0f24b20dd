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
Localized multitaper cross-power estimation with arbitrary-shape windows.

For each taper the two input fields are multiplied by the window on a GLQ
grid of bandwidth L + Lt, re-expanded, and their cross power is computed up
to degree L - Lt. The K single-taper spectra are then averaged (optionally
with weights) and the standard error of the average is returned.
"""
import logging
import time
from typing import NamedTuple, Optional, Sequence, Tuple

import numpy as np

from ._config import DEFAULT_NORM, DEFAULT_CSPHASE
from .core import _combine
from .errors import (
    AllocationError,
    DimensionError,
    InvalidBandwidthError,
    InvalidParameterError,
)
from .quadrature import QuadratureCache, resolve_cache
from .tapers import as_taper_bank
from .transforms import analyze, check_norm_csphase, cross_power, synthesize

logger = logging.getLogger(__name__)

__all__ = ["MultitaperEstimate", "sh_multitaper_mask_cse", "sh_multitaper_mask_se"]


class MultitaperEstimate(NamedTuple):
    """
    mtse : (L-Lt+1,) ndarray
        Multitaper spectrum estimate for degrees 0..L-Lt.
    sd : (L-Lt+1,) ndarray
        Standard error of the estimate; zeros when only one taper is used.
    k : int
        Number of tapers combined.
    sd_defined : bool
        False when k == 1 (no sample variance from a single estimate).
    """
    mtse: np.ndarray
    sd: np.ndarray
    k: int
    sd_defined: bool


def _as_cilm(cilm, lmax: Optional[int], name: str) -> Tuple[np.ndarray, int]:
    arr = np.asarray(cilm, dtype=np.float64)
    if arr.ndim != 3 or arr.shape[0] < 2:
        raise DimensionError(
            f"{name.upper()} must be dimensioned (2, LMAX+1, LMAX+1); input array is "
            f"dimensioned {arr.shape}."
        )
    if lmax is None:
        lmax = min(arr.shape[1], arr.shape[2]) - 1
    return arr, int(lmax)


def _require_cilm(arr: np.ndarray, lmax: int, name: str) -> None:
    if arr.shape[1] < lmax + 1 or arr.shape[2] < lmax + 1:
        raise DimensionError(
            f"{name.upper()} must be dimensioned (2, LMAX+1, LMAX+1) where LMAX is {lmax}; "
            f"input array is dimensioned {arr.shape}."
        )


def _check_weights(taper_wt, K: int) -> np.ndarray:
    w = np.asarray(taper_wt, dtype=np.float64).ravel()
    if w.shape[0] < K:
        raise DimensionError(
            f"TAPER_WT must be dimensioned as (K) where K is {K}; input dimension is {w.shape[0]}."
        )
    w = w[:K]
    if not np.all(np.isfinite(w)):
        raise InvalidParameterError("TAPER_WT contains NaN/Inf.")
    sw = float(w.sum())
    sw2 = float(np.sum(w * w))
    if sw == 0.0:
        raise InvalidParameterError("TAPER_WT must not sum to zero.")
    if K > 1 and sw * sw - sw2 <= 0.0:
        raise InvalidParameterError(
            "TAPER_WT leaves no degrees of freedom for the standard error "
            f"((sum w)**2 = {sw * sw:.6g} must exceed sum w**2 = {sw2:.6g})."
        )
    if not np.isclose(sw, 1.0, rtol=0.0, atol=1e-8):
        logger.warning(f"TAPER_WT sums to {sw:.12g}, not 1; estimates are normalized by the sum.")
    return w


def sh_multitaper_mask_cse(
    cilm1,
    cilm2,
    tapers,
    *,
    lmax1: Optional[int] = None,
    lmax2: Optional[int] = None,
    lmaxt: Optional[int] = None,
    k: Optional[int] = None,
    taper_order: Optional[Sequence[int]] = None,
    taper_wt=None,
    norm: int = DEFAULT_NORM,
    csphase: int = DEFAULT_CSPHASE,
    cache: Optional[QuadratureCache] = None,
) -> MultitaperEstimate:
    """
    Localized multitaper cross-power spectrum of two fields.

    Parameters
    ----------
    cilm1, cilm2 : (2, L+1, L+1) array_like
        Spherical-harmonic coefficients of the two fields.
    tapers : array_like or TaperBank
        Taper bank, usually in packed form ((lmaxt+1)**2, K).
    lmax1, lmax2 : int, optional
        Bandwidths of the inputs; inferred from their shapes when omitted.
        The estimate uses L = min(lmax1, lmax2).
    lmaxt : int, optional
        Taper bandwidth; inferred from the taper bank when omitted.
    k : int, optional
        Number of tapers to use; defaults to every taper in the bank.
    taper_order : sequence of int, optional
        Angular orders, for spherical-cap tapers.
    taper_wt : array_like, optional
        Weight of each single-taper estimate; should sum to 1.
    norm : int, optional
        1 geodesy (default), 2 Schmidt, 3 unnormalized, 4 orthonormalized.
    csphase : int, optional
        1 excludes (default), -1 includes the Condon-Shortley phase.
    cache : QuadratureCache, optional
        Quadrature cache; defaults to the calling thread's cache.

    Returns
    -------
    MultitaperEstimate
        Estimate and standard error for degrees 0..L-lmaxt.
    """
    check_norm_csphase(norm, csphase)
    c1, lmax1 = _as_cilm(cilm1, lmax1, "cilm1")
    c2, lmax2 = _as_cilm(cilm2, lmax2, "cilm2")
    lmax = min(lmax1, lmax2)
    _require_cilm(c1, lmax, "cilm1")
    _require_cilm(c2, lmax, "cilm2")

    bank = as_taper_bank(tapers, lmaxt=lmaxt, taper_order=taper_order)
    K = bank.ntapers if k is None else int(k)
    if K < 1:
        raise InvalidParameterError(f"Number of tapers K must be at least 1, got {K}.")
    bank.require(K)
    lmaxt = bank.lmaxt
    if lmaxt >= lmax:
        raise InvalidBandwidthError(lmax, lmaxt)

    w = None if taper_wt is None else _check_weights(taper_wt, K)
    if K == 1:
        logger.warning("Only one taper used; the standard error is undefined and left at zero.")

    auto = c1 is c2
    lmaxmul = lmax + lmaxt
    lout = lmax - lmaxt
    cache = resolve_cache(cache)

    t0 = time.perf_counter()
    try:
        se = np.empty((lout + 1, K), dtype=np.float64)
        grid1 = synthesize(c1[:2, : lmax + 1, : lmax + 1], lmaxmul, norm=norm, csphase=csphase, cache=cache)
        grid2 = grid1 if auto else synthesize(
            c2[:2, : lmax + 1, : lmax + 1], lmaxmul, norm=norm, csphase=csphase, cache=cache
        )
        for i in range(K):
            gridwin = synthesize(bank.cilm(i), lmaxmul, norm=norm, csphase=csphase, cache=cache)
            shloc1 = analyze(grid1 * gridwin, lmaxmul, norm=norm, csphase=csphase, cache=cache)
            if auto:
                shloc2 = shloc1
            else:
                shloc2 = analyze(grid2 * gridwin, lmaxmul, norm=norm, csphase=csphase, cache=cache)
            se[:, i] = cross_power(shloc1, shloc2, lout)
    except MemoryError as exc:
        raise AllocationError(
            f"Could not allocate GLQ grids for LMAX={lmax}, LMAXT={lmaxt}, K={K}."
        ) from exc

    stats = _combine(se, w)
    logger.debug(
        f"[multitaper] L={lmax} Lt={lmaxt} K={K} weighted={w is not None} "
        f"in {time.perf_counter() - t0:.4f} s"
    )
    return MultitaperEstimate(stats.mtse, stats.sd, K, K > 1)


def sh_multitaper_mask_se(
    cilm,
    tapers,
    *,
    lmax: Optional[int] = None,
    **kwargs,
) -> MultitaperEstimate:
    """
    Localized multitaper power spectrum of a single field.

    Same as `sh_multitaper_mask_cse` with both inputs equal; the field is
    windowed and expanded once per taper. The bandwidth is given as `lmax`.
    """
    for key in ("lmax1", "lmax2"):
        if key in kwargs:
            raise TypeError(
                f"sh_multitaper_mask_se() got an unexpected keyword argument '{key}'; "
                "pass the bandwidth as `lmax`."
            )
    c, _ = _as_cilm(cilm, lmax, "cilm")
    return sh_multitaper_mask_cse(c, c, tapers, lmax1=lmax, lmax2=lmax, **kwargs)
