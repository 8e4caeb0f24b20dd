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
Minimum-variance combination of single-taper estimates.

For k tapers with covariance F_k, the weights minimizing w^T F_k w under
sum(w) = 1 follow from a Lagrange-multiplier solve:

    w_opt = F_k^-1 1 / (1^T F_k^-1 1),     var_opt = 1 / (1^T F_k^-1 1).

Each k is solved from its own leading k x k slice; the optimal weights for k
tapers are not a truncation of those for k+1.
"""
import logging
from typing import NamedTuple, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import scipy.linalg

from ._config import RCOND_MIN
from .covariance import taper_covariance
from .errors import DimensionError, InvalidParameterError, SingularCovarianceError
from .quadrature import QuadratureCache

logger = logging.getLogger(__name__)

__all__ = ["VarOptResult", "solve_min_variance", "var_opt_from_covariance", "sh_mt_var_opt"]


class VarOptResult(NamedTuple):
    """
    Output of the minimum-variance solver.

    var_opt : (kmax,) ndarray
        Minimum variance using the first k tapers, k = 1..kmax.
    var_unit : (kmax,) ndarray
        Variance with equal weights 1/k.
    weight_opt : (kmax, kmax) ndarray or None
        Column k-1 holds the optimal weights of the first k tapers.
    unweighted_covar : (kmax, kmax) ndarray or None
        Covariance matrix F of the single-taper estimates.
    """
    var_opt: np.ndarray
    var_unit: np.ndarray
    weight_opt: Optional[np.ndarray] = None
    unweighted_covar: Optional[np.ndarray] = None

    @property
    def kmax(self) -> int:
        return int(self.var_opt.shape[0])

    def to_dataframe(self) -> pd.DataFrame:
        """Variances indexed by taper count, with the gain of optimal weighting."""
        k = np.arange(1, self.kmax + 1)
        return pd.DataFrame(
            {
                "k": k,
                "var_opt": self.var_opt,
                "var_unit": self.var_unit,
                "gain": np.divide(
                    self.var_unit,
                    self.var_opt,
                    out=np.full(self.kmax, np.nan),
                    where=self.var_opt != 0,
                ),
            }
        ).set_index("k")


def solve_min_variance(Fk: np.ndarray, rcond: float = RCOND_MIN) -> Tuple[np.ndarray, float]:
    """
    Optimal weights and minimum variance for one covariance slice.

    Raises
    ------
    SingularCovarianceError
        If the slice holds non-finite values, its reciprocal condition
        number is below `rcond`, or it is not positive definite.
    """
    Fk = np.asarray(Fk, dtype=np.float64)
    k = Fk.shape[0]
    if not np.all(np.isfinite(Fk)):
        raise SingularCovarianceError(k, np.nan, reason="not finite")

    cond = np.linalg.cond(Fk)
    rc = 1.0 / cond if np.isfinite(cond) and cond > 0 else 0.0
    if rc < rcond:
        raise SingularCovarianceError(k, rc)

    ones = np.ones(k, dtype=np.float64)
    try:
        x = scipy.linalg.solve(Fk, ones, assume_a="pos")
    except np.linalg.LinAlgError as exc:
        raise SingularCovarianceError(k, rc, reason="not positive definite") from exc

    denom = float(ones @ x)
    if not np.isfinite(denom) or denom <= 0.0:
        raise SingularCovarianceError(k, rc, reason="not positive definite")
    return x / denom, 1.0 / denom


def var_opt_from_covariance(
    F,
    *,
    kmax: Optional[int] = None,
    return_weights: bool = True,
    rcond: Optional[float] = None,
    clip: bool = False,
) -> VarOptResult:
    """
    Minimum and equal-weight variances for k = 1..kmax from a covariance matrix.

    Parameters
    ----------
    F : (K, K) array_like
        Symmetric covariance matrix of the single-taper estimates.
    kmax : int, optional
        Largest taper count; defaults to K.
    return_weights : bool, optional
        Fill `weight_opt` in the result. Defaults to True.
    rcond : float, optional
        Smallest accepted reciprocal condition number of a slice. Defaults
        to the package setting (MTSPHERE_RCOND).
    clip : bool, optional
        If True, stop at the last well-conditioned k instead of raising and
        return arrays of that length. Defaults to False.

    Returns
    -------
    VarOptResult
        `unweighted_covar` is left as None; `sh_mt_var_opt` fills it.
    """
    F = np.asarray(F, dtype=np.float64)
    if F.ndim != 2 or F.shape[0] != F.shape[1]:
        raise DimensionError(f"Covariance matrix must be square; got shape {F.shape}.")
    kmax = F.shape[0] if kmax is None else int(kmax)
    if kmax < 1:
        raise InvalidParameterError(f"`kmax` must be at least 1, got {kmax}.")
    if kmax > F.shape[0]:
        raise DimensionError(
            f"Covariance matrix must be dimensioned (KMAX, KMAX) where KMAX is {kmax}; "
            f"input array is dimensioned {F.shape}."
        )
    F = F[:kmax, :kmax]
    if not np.allclose(F, F.T, rtol=1e-10, atol=0.0, equal_nan=True):
        raise InvalidParameterError("Covariance matrix must be symmetric.")
    rcond = RCOND_MIN if rcond is None else float(rcond)

    var_opt = np.zeros(kmax, dtype=np.float64)
    var_unit = np.zeros(kmax, dtype=np.float64)
    weight_opt = np.zeros((kmax, kmax), dtype=np.float64) if return_weights else None

    kdone = kmax
    for k in range(1, kmax + 1):
        Fk = F[:k, :k]
        try:
            w, v = solve_min_variance(Fk, rcond)
        except SingularCovarianceError as exc:
            if not clip or k == 1:
                raise
            logger.warning(f"{exc} Clipping kmax to {k - 1}.")
            kdone = k - 1
            break
        var_opt[k - 1] = v
        var_unit[k - 1] = float(np.sum(Fk)) / (k * k)
        if weight_opt is not None:
            weight_opt[:k, k - 1] = w

    if kdone < kmax:
        var_opt = var_opt[:kdone]
        var_unit = var_unit[:kdone]
        if weight_opt is not None:
            weight_opt = weight_opt[:kdone, :kdone]

    return VarOptResult(var_opt, var_unit, weight_opt, None)


def sh_mt_var_opt(
    l: int,
    tapers,
    sff,
    *,
    lwin: Optional[int] = None,
    kmax: Optional[int] = None,
    taper_order: Optional[Sequence[int]] = None,
    nocross: bool = False,
    return_weights: bool = True,
    return_covariance: bool = True,
    rcond: Optional[float] = None,
    clip: bool = False,
    cache: Optional[QuadratureCache] = None,
) -> VarOptResult:
    """
    Minimum variance of the multitaper estimate at degree l for 1..kmax tapers.

    Builds the covariance matrix of the single-taper estimates for the
    assumed spectrum `sff` (see `taper_covariance`) and solves for the
    optimal weights of every leading subset of tapers.

    Parameters
    ----------
    l : int
        Spherical-harmonic degree.
    tapers : array_like or TaperBank
        Taper bank in packed or spherical-cap form.
    sff : array_like
        Assumed global power spectrum, degrees 0..l+lwin.
    lwin, kmax, taper_order, nocross :
        As for `taper_covariance`.
    return_weights : bool, optional
        Fill `weight_opt`. Defaults to True.
    return_covariance : bool, optional
        Fill `unweighted_covar`. Defaults to True.
    rcond, clip :
        As for `var_opt_from_covariance`.
    cache : QuadratureCache, optional
        Quadrature cache; defaults to the calling thread's cache.

    Returns
    -------
    VarOptResult
    """
    F = taper_covariance(
        l, tapers, sff,
        lwin=lwin, kmax=kmax, taper_order=taper_order, nocross=nocross, cache=cache,
    )
    result = var_opt_from_covariance(F, return_weights=return_weights, rcond=rcond, clip=clip)
    return result._replace(unweighted_covar=F if return_covariance else None)
