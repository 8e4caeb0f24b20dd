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
Exception hierarchy shared by every mtsphere entry point.

All errors derive from MultitaperError and, where a builtin category fits,
from that builtin as well, so callers may catch either.
"""
import numpy as np

__all__ = [
    "MultitaperError",
    "DimensionError",
    "InvalidParameterError",
    "InvalidBandwidthError",
    "SingularCovarianceError",
    "AllocationError",
]


class MultitaperError(Exception):
    """Base class for errors raised by mtsphere."""


class DimensionError(MultitaperError, ValueError):
    """An input array is smaller than the shape the computation requires."""


class InvalidParameterError(MultitaperError, ValueError):
    """A configuration value is outside its admissible range."""


class InvalidBandwidthError(InvalidParameterError):
    """The taper bandwidth is not smaller than the signal bandwidth."""

    def __init__(self, lmax: int, lmaxt: int):
        self.lmax = int(lmax)
        self.lmaxt = int(lmaxt)
        super().__init__(
            f"Taper bandwidth lmaxt={self.lmaxt} must be smaller than the "
            f"signal bandwidth lmax={self.lmax}."
        )


class SingularCovarianceError(MultitaperError, np.linalg.LinAlgError):
    """
    The leading k x k covariance slice cannot be inverted reliably.

    Attributes
    ----------
    k : int
        Taper count whose covariance slice failed.
    rcond : float
        Reciprocal condition number estimate of that slice (0 if singular,
        NaN if the slice holds non-finite values).
    """

    def __init__(self, k: int, rcond: float, reason: str = "ill-conditioned"):
        self.k = int(k)
        self.rcond = float(rcond)
        super().__init__(
            f"Covariance matrix for k={self.k} tapers is {reason} "
            f"(rcond={self.rcond:.3e})."
        )


class AllocationError(MultitaperError, MemoryError):
    """Intermediate buffers could not be allocated."""
