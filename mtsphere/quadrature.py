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
Gauss-Legendre quadrature nodes and weights, and the bandwidth-keyed cache
around them.

Generating the nodes involves root finding, so they are computed once per
bandwidth and reused while calls keep asking for the same bandwidth. A cache
holds a single entry and is replaced as a whole when the bandwidth changes.
Legendre functions are not stored; the transforms evaluate them on the fly,
so an entry only costs O(lmax) memory.

Each thread owns its own cache (see `thread_cache`). An explicit
QuadratureCache may be passed to every entry point instead; such an object
must not be shared between threads.
"""
import logging
import threading
import time
from typing import NamedTuple, Optional, Tuple

import numpy as np
import pyshtools as pysh

from .errors import InvalidParameterError

logger = logging.getLogger(__name__)

__all__ = [
    "QuadratureEntry",
    "QuadratureCache",
    "quadrature_nodes_weights",
    "thread_cache",
    "resolve_cache",
]


def quadrature_nodes_weights(lmax: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Gauss-Legendre nodes and weights for a band-limited field.

    Parameters
    ----------
    lmax : int
        Maximum spherical-harmonic degree to integrate exactly.

    Returns
    -------
    nodes : (lmax+1,) ndarray
        cos(colatitude) of the latitude nodes, ordered north to south.
    weights : (lmax+1,) ndarray
        Quadrature weights, summing to 2.
    """
    lmax = int(lmax)
    if lmax < 0:
        raise InvalidParameterError(f"`lmax` must be non-negative, got {lmax}.")
    nodes, weights = pysh.expand.SHGLQ(lmax)
    return np.asarray(nodes, dtype=np.float64), np.asarray(weights, dtype=np.float64)


class QuadratureEntry(NamedTuple):
    """Quadrature nodes and weights for one bandwidth."""
    lmax: int
    nodes: np.ndarray
    weights: np.ndarray

    @property
    def nlat(self) -> int:
        return int(self.nodes.shape[0])

    @property
    def nlon(self) -> int:
        return 2 * self.lmax + 1


class QuadratureCache:
    """
    Single-entry cache of GLQ nodes and weights.

    The key is the bandwidth. `get` returns the cached entry when the
    bandwidth matches and otherwise builds a complete new entry before it
    replaces the old one, so a failed rebuild leaves the previous entry
    intact.
    """

    def __init__(self):
        self._entry: Optional[QuadratureEntry] = None
        self.hits = 0
        self.misses = 0

    @property
    def lmax(self) -> Optional[int]:
        """Bandwidth of the cached entry, or None when empty."""
        entry = self._entry
        return None if entry is None else entry.lmax

    def get(self, lmax: int) -> QuadratureEntry:
        lmax = int(lmax)
        entry = self._entry
        if entry is not None and entry.lmax == lmax:
            self.hits += 1
            return entry

        t0 = time.perf_counter()
        nodes, weights = quadrature_nodes_weights(lmax)
        new_entry = QuadratureEntry(lmax, nodes, weights)

        self._entry = new_entry
        self.misses += 1
        logger.debug(
            f"[quadrature] built GLQ nodes for lmax={lmax} "
            f"(previous={None if entry is None else entry.lmax}) "
            f"in {time.perf_counter() - t0:.4f} s"
        )
        return new_entry

    def clear(self) -> None:
        self._entry = None

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(lmax={self.lmax}, hits={self.hits}, "
            f"misses={self.misses})"
        )


class _ThreadLocalCaches(threading.local):
    def __init__(self):
        self.cache = QuadratureCache()


_thread_caches = _ThreadLocalCaches()


def thread_cache() -> QuadratureCache:
    """Return the calling thread's own QuadratureCache."""
    return _thread_caches.cache


def resolve_cache(cache: Optional[QuadratureCache]) -> QuadratureCache:
    """Use the explicit cache when given, else the calling thread's cache."""
    if cache is None:
        return thread_cache()
    if not isinstance(cache, QuadratureCache):
        raise TypeError(f"`cache` must be a QuadratureCache, got {type(cache).__name__}.")
    return cache
