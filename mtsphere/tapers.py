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
Taper banks: the localization windows used by the estimators.

Two input layouts are accepted:

- packed (arbitrary-shape windows): a ((lmaxt+1)**2, K) matrix whose columns
  are coefficient vectors in the layout of `vector_to_cilm`;
- spherical cap: a (lmaxt+1, K) matrix of per-degree coefficients together
  with `taper_order[K]`. Order m >= 0 places the column in the cos(m*phi)
  terms, m < 0 in the sin(|m|*phi) terms.
"""
import math
from typing import Optional, Sequence

import numpy as np

from .errors import DimensionError, InvalidParameterError
from .transforms import vector_to_cilm

__all__ = ["TaperBank", "as_taper_bank"]


class TaperBank:
    """
    Ordered set of orthogonal tapers expanded to coefficient arrays on demand.

    Parameters
    ----------
    tapers : array_like
        Taper matrix, one taper per column (a 1D array is a single taper).
    lmaxt : int, optional
        Taper bandwidth. Inferred from the number of rows when omitted.
    taper_order : sequence of int, optional
        Angular order of each column for spherical-cap tapers. Omit for
        packed, arbitrary-shape tapers.
    """

    def __init__(
        self,
        tapers,
        lmaxt: Optional[int] = None,
        taper_order: Optional[Sequence[int]] = None,
    ):
        arr = np.asarray(tapers, dtype=np.float64)
        if arr.ndim == 1:
            arr = arr[:, None]
        if arr.ndim != 2 or arr.shape[0] == 0 or arr.shape[1] == 0:
            raise DimensionError(
                f"TAPERS must be a non-empty 2D matrix (one taper per column); got shape {arr.shape}."
            )
        nrows, ncols = arr.shape

        if taper_order is None:
            self.form = "packed"
            if lmaxt is None:
                lmaxt = math.isqrt(nrows) - 1
            lmaxt = int(lmaxt)
            if lmaxt < 0:
                raise InvalidParameterError(f"`lmaxt` must be non-negative, got {lmaxt}.")
            if nrows < (lmaxt + 1) ** 2:
                raise DimensionError(
                    f"TAPERS must be dimensioned ((LMAXT+1)**2, K) where LMAXT is {lmaxt}; "
                    f"input array is dimensioned {arr.shape}."
                )
            self.taper_order = None
        else:
            self.form = "cap"
            if lmaxt is None:
                lmaxt = nrows - 1
            lmaxt = int(lmaxt)
            if lmaxt < 0:
                raise InvalidParameterError(f"`lmaxt` must be non-negative, got {lmaxt}.")
            if nrows < lmaxt + 1:
                raise DimensionError(
                    f"TAPERS must be dimensioned (LMAXT+1, K) where LMAXT is {lmaxt}; "
                    f"input array is dimensioned {arr.shape}."
                )
            orders = np.asarray(taper_order, dtype=np.int64).ravel()
            if orders.shape[0] < ncols:
                # Columns without an order are unusable; keep only those covered.
                ncols = int(orders.shape[0])
                if ncols == 0:
                    raise DimensionError("TAPER_ORDER must hold one order per taper; got none.")
                arr = arr[:, :ncols]
            orders = orders[:ncols]
            if np.any(np.abs(orders) > lmaxt):
                raise InvalidParameterError(
                    f"Taper orders must satisfy |m| <= LMAXT={lmaxt}; got {orders.tolist()}."
                )
            self.taper_order = orders

        self.lmaxt = lmaxt
        self.matrix = arr
        self.ntapers = int(ncols)

    def require(self, k: int) -> None:
        """Raise DimensionError unless at least k tapers are available."""
        if k > self.ntapers:
            raise DimensionError(
                f"{k} tapers requested but the taper bank holds {self.ntapers} "
                f"({self.form} form, LMAXT={self.lmaxt})."
            )

    def cilm(self, i: int) -> np.ndarray:
        """Coefficient array (2, lmaxt+1, lmaxt+1) of taper i (0-based)."""
        if not 0 <= i < self.ntapers:
            raise IndexError(f"Taper index {i} out of range for {self.ntapers} tapers.")
        col = self.matrix[:, i]
        if self.form == "packed":
            return vector_to_cilm(col, self.lmaxt)
        m = int(self.taper_order[i])
        cilm = np.zeros((2, self.lmaxt + 1, self.lmaxt + 1), dtype=np.float64)
        am = abs(m)
        cilm[0 if m >= 0 else 1, am:, am] = col[am : self.lmaxt + 1]
        return cilm

    def cilms(self, k: Optional[int] = None) -> np.ndarray:
        """Stacked coefficient arrays (k, 2, lmaxt+1, lmaxt+1) of the first k tapers."""
        k = self.ntapers if k is None else int(k)
        self.require(k)
        out = np.empty((k, 2, self.lmaxt + 1, self.lmaxt + 1), dtype=np.float64)
        for i in range(k):
            out[i] = self.cilm(i)
        return out

    def __len__(self) -> int:
        return self.ntapers

    def __repr__(self) -> str:
        return f"{type(self).__name__}(form={self.form!r}, lmaxt={self.lmaxt}, ntapers={self.ntapers})"


def as_taper_bank(tapers, lmaxt: Optional[int] = None, taper_order=None) -> TaperBank:
    """Return `tapers` unchanged if it is a TaperBank, else wrap it."""
    if isinstance(tapers, TaperBank):
        if lmaxt is not None and int(lmaxt) != tapers.lmaxt:
            raise InvalidParameterError(
                f"`lmaxt`={lmaxt} conflicts with the taper bank bandwidth {tapers.lmaxt}."
            )
        return tapers
    return TaperBank(tapers, lmaxt=lmaxt, taper_order=taper_order)
