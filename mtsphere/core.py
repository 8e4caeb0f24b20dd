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
core.py — numerical kernels for combining single-taper spectral estimates
-----------------------------------------------------------------------------
Design notes
- Combination kernels return (mtse, sd) for a per-taper table se[l, i].
  The standard error is left at zero when only one taper is used.
- Unweighted: sample mean and sqrt(sum (se - mean)**2 / (K-1) / K).
- Weighted: sum(w se) / sum(w), with the effective-sample-size factor
    sum(w**2) / ((sum(w)**2 - sum(w**2)) * sum(w)).
- Kernels are serial so that several threads may call them at once.
- Plain NumPy reducers are provided next to the JIT kernels; they are the
  readable reference used in tests.
-----------------------------------------------------------------------------
"""
__all__ = [
    "EstimateStats",
    # jitted kernels
    "_combine_unweighted_nb",
    "_combine_weighted_nb",
    # numpy references
    "_combine_np",
]

from typing import NamedTuple, Optional

import numpy as np
from numba import njit as _njit


class EstimateStats(NamedTuple):
    """
    Combined statistics of K single-taper estimates.

    mtse : ndarray
        Multitaper estimate per degree.
    sd : ndarray
        Standard error of the estimate per degree (zeros when K == 1).
    """
    mtse: np.ndarray
    sd: np.ndarray


# Combination of single-taper estimates ----------------------------------------

@_njit(cache=True)
def _combine_unweighted_nb(se):
    """
    Arithmetic mean across tapers and standard error of the mean.

    se has shape (nl, K). The unbiased (K-1) sample variance is used.
    """
    nl = se.shape[0]
    K = se.shape[1]
    mtse = np.zeros(nl, np.float64)
    sd = np.zeros(nl, np.float64)
    for l in range(nl):
        acc = 0.0
        for i in range(K):
            acc += se[l, i]
        mu = acc / K
        mtse[l] = mu
        if K > 1:
            ss = 0.0
            for i in range(K):
                d = se[l, i] - mu
                ss += d * d
            sd[l] = np.sqrt(ss / (K - 1) / K)
    return mtse, sd


@_njit(cache=True)
def _combine_weighted_nb(se, w):
    """
    Weighted mean across tapers with effective-sample-size standard error.

    factor = sum(w**2) / ((sum(w)**2 - sum(w**2)) * sum(w)). Callers must
    ensure sum(w)**2 > sum(w**2) when K > 1.
    """
    nl = se.shape[0]
    K = se.shape[1]
    sw = 0.0
    sw2 = 0.0
    for i in range(K):
        sw += w[i]
        sw2 += w[i] * w[i]
    factor = 0.0
    if K > 1:
        factor = sw2 / ((sw * sw - sw2) * sw)
    mtse = np.zeros(nl, np.float64)
    sd = np.zeros(nl, np.float64)
    for l in range(nl):
        acc = 0.0
        for i in range(K):
            acc += se[l, i] * w[i]
        mu = acc / sw
        mtse[l] = mu
        if K > 1:
            ss = 0.0
            for i in range(K):
                d = se[l, i] - mu
                ss += d * d * w[i]
            sd[l] = np.sqrt(ss * factor)
    return mtse, sd


def _combine_np(se: np.ndarray, w: Optional[np.ndarray] = None) -> EstimateStats:
    """
    NumPy reference for the combination kernels.
    """
    se = np.asarray(se, dtype=np.float64)
    K = se.shape[1]
    if w is None:
        mtse = se.mean(axis=1)
        if K > 1:
            sd = np.sqrt(np.sum((se - mtse[:, None]) ** 2, axis=1) / (K - 1) / K)
        else:
            sd = np.zeros_like(mtse)
        return EstimateStats(mtse, sd)

    w = np.asarray(w, dtype=np.float64)
    sw = w.sum()
    sw2 = np.sum(w * w)
    mtse = se @ w / sw
    if K > 1:
        factor = sw2 / ((sw * sw - sw2) * sw)
        sd = np.sqrt(((se - mtse[:, None]) ** 2) @ w * factor)
    else:
        sd = np.zeros_like(mtse)
    return EstimateStats(mtse, sd)


def _combine(se: np.ndarray, w: Optional[np.ndarray] = None) -> EstimateStats:
    """Dispatch to the weighted or unweighted JIT kernel."""
    se = np.ascontiguousarray(se, dtype=np.float64)
    if w is None:
        mtse, sd = _combine_unweighted_nb(se)
    else:
        mtse, sd = _combine_weighted_nb(se, np.ascontiguousarray(w, dtype=np.float64))
    return EstimateStats(mtse, sd)
