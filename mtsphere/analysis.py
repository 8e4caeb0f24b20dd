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
import time
import logging
from typing import List, Dict, Any, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from matplotlib.figure import Figure
from matplotlib.axes import Axes

from ._config import DEFAULT_NORM, DEFAULT_CSPHASE, NORM_NAMES
from .errors import DimensionError, InvalidBandwidthError
from .multitaper import sh_multitaper_mask_cse
from .quadrature import QuadratureCache
from .tapers import TaperBank, as_taper_bank
from .transforms import check_norm_csphase
from .weights import VarOptResult, sh_mt_var_opt


class MultitaperAnalyzer:
    """
    Configures and executes a localized multitaper spectral analysis.

    This class is the main configuration object of the mtsphere library. It
    takes one or two spherical-harmonic expansions and a taper bank, and
    validates the configuration up front. The heavy computation is deferred
    until `.compute()` is called.
    """

    def __init__(
        self,
        cilm1: np.ndarray,
        tapers: Union[np.ndarray, TaperBank],
        cilm2: Optional[np.ndarray] = None,
        *,
        lmax1: Optional[int] = None,
        lmax2: Optional[int] = None,
        lmaxt: Optional[int] = None,
        k: Optional[int] = None,
        taper_order: Optional[Sequence[int]] = None,
        taper_wt: Optional[np.ndarray] = None,
        norm: int = DEFAULT_NORM,
        csphase: int = DEFAULT_CSPHASE,
        cache: Optional[QuadratureCache] = None,
        verbose: bool = False,
    ):
        """
        Initializes the analyzer.

        Parameters
        ----------
        cilm1 : np.ndarray
            Coefficients (2, L1+1, L1+1) of the first field.
        tapers : np.ndarray or TaperBank
            Taper bank; packed ((lmaxt+1)**2, K) or spherical-cap (lmaxt+1, K)
            with `taper_order`.
        cilm2 : np.ndarray, optional
            Coefficients of the second field. If None, the auto-spectrum of
            `cilm1` is estimated. Defaults to None.
        lmax1, lmax2 : int, optional
            Bandwidths of the inputs. Inferred from the arrays by default.
        lmaxt : int, optional
            Taper bandwidth. Inferred from the taper bank by default.
        k : int, optional
            Number of tapers to combine. Defaults to all of them.
        taper_order : sequence of int, optional
            Angular order of each spherical-cap taper.
        taper_wt : np.ndarray, optional
            Weights of the single-taper estimates (should sum to 1). Defaults
            to equal weighting.
        norm : int, optional
            1 geodesy, 2 Schmidt, 3 unnormalized, 4 orthonormalized.
        csphase : int, optional
            1 to exclude, -1 to include the Condon-Shortley phase.
        cache : QuadratureCache, optional
            Quadrature cache; defaults to the calling thread's cache.
        verbose : bool, optional
            If True, logs progress and diagnostic information. Defaults to False.
        """
        check_norm_csphase(norm, csphase)
        self.verbose = bool(verbose)
        self.cache = cache

        # --- Process and validate input data ---
        x1 = np.asarray(cilm1, dtype=np.float64)
        if x1.ndim != 3 or x1.shape[0] != 2:
            raise DimensionError(f"cilm1 must be dimensioned (2, L+1, L+1); got {x1.shape}.")
        self.cilm1 = x1
        if cilm2 is None:
            self.iscsd = False
            self.cilm2 = x1
        else:
            x2 = np.asarray(cilm2, dtype=np.float64)
            if x2.ndim != 3 or x2.shape[0] != 2:
                raise DimensionError(f"cilm2 must be dimensioned (2, L+1, L+1); got {x2.shape}.")
            self.iscsd = True
            self.cilm2 = x2

        # Warn (don't fail) on NaN/Inf in input
        for name, arr in (("cilm1", self.cilm1), ("cilm2", self.cilm2)):
            if not np.all(np.isfinite(arr)):
                logging.warning(f"Input {name} contains NaN/Inf; results may be undefined.")

        self.bank = as_taper_bank(tapers, lmaxt=lmaxt, taper_order=taper_order)

        lmax1 = self.cilm1.shape[-1] - 1 if lmax1 is None else int(lmax1)
        lmax2 = self.cilm2.shape[-1] - 1 if lmax2 is None else int(lmax2)
        lmax = min(lmax1, lmax2)
        if self.bank.lmaxt >= lmax:
            raise InvalidBandwidthError(lmax, self.bank.lmaxt)

        self.config = {
            "lmax1": lmax1,
            "lmax2": lmax2,
            "lmax": lmax,
            "lmaxt": self.bank.lmaxt,
            "k": self.bank.ntapers if k is None else int(k),
            "taper_form": self.bank.form,
            "taper_wt": None if taper_wt is None else np.asarray(taper_wt, dtype=np.float64),
            "norm": int(norm),
            "csphase": int(csphase),
        }
        self.bank.require(self.config["k"])

        if self.verbose:
            logging.info(
                f"MultitaperAnalyzer: L={lmax} (L1={lmax1}, L2={lmax2}) | Lt={self.bank.lmaxt} | "
                f"K={self.config['k']} ({self.bank.form} tapers) | "
                f"mode={'CSE' if self.iscsd else 'SE'} | "
                f"weights={'custom' if taper_wt is not None else 'equal'} | "
                f"norm={NORM_NAMES[int(norm)]} | csphase={int(csphase)}"
            )

    @property
    def degrees(self) -> np.ndarray:
        """Degrees 0..L-Lt covered by the estimate."""
        return np.arange(self.config["lmax"] - self.config["lmaxt"] + 1)

    def compute(self) -> "MultitaperResult":
        """
        Executes the multitaper estimation and returns a MultitaperResult.

        Returns
        -------
        MultitaperResult
            An object containing the estimate, its standard error and helper
            methods.
        """
        if self.verbose:
            logging.info(f"Computing {self.config['k']} single-taper spectra...")

        t0 = time.perf_counter()
        est = sh_multitaper_mask_cse(
            self.cilm1,
            self.cilm2,
            self.bank,
            lmax1=self.config["lmax1"],
            lmax2=self.config["lmax2"],
            k=self.config["k"],
            taper_wt=self.config["taper_wt"],
            norm=self.config["norm"],
            csphase=self.config["csphase"],
            cache=self.cache,
        )
        t_total = time.perf_counter() - t0

        if self.verbose:
            logging.info(f"Computation completed in {t_total:.2f} seconds.")

        final_results = {
            "degrees": self.degrees,
            "mtse": est.mtse,
            "sd": est.sd,
            "k": est.k,
            "sd_defined": est.sd_defined,
            "compute_t": t_total,
        }
        return MultitaperResult(final_results, self.config, self.iscsd)

    def optimal_weights(
        self,
        l: int,
        sff: np.ndarray,
        *,
        kmax: Optional[int] = None,
        nocross: bool = False,
        rcond: Optional[float] = None,
        clip: bool = False,
    ) -> VarOptResult:
        """
        Minimum-variance weights of this analyzer's tapers at degree `l`.

        Parameters
        ----------
        l : int
            Degree at which the variance is minimized.
        sff : np.ndarray
            Assumed global power spectrum, degrees 0..l+lmaxt.
        kmax : int, optional
            Largest number of tapers. Defaults to the analyzer's `k`.
        nocross : bool, optional
            Only compute the diagonal of the covariance matrix.
        rcond, clip :
            Conditioning policy, see `var_opt_from_covariance`.

        Returns
        -------
        VarOptResult
            Column `kmax-1` of `weight_opt` can be passed as `taper_wt`.
        """
        kmax = self.config["k"] if kmax is None else int(kmax)
        t0 = time.perf_counter()
        res = sh_mt_var_opt(
            l, self.bank, sff,
            kmax=kmax, nocross=nocross, rcond=rcond, clip=clip, cache=self.cache,
        )
        if self.verbose:
            logging.info(
                f"[var_opt] l={l} kmax={res.kmax}: var_opt={res.var_opt[-1]:.4g}, "
                f"var_unit={res.var_unit[-1]:.4g} ({time.perf_counter() - t0:.2f} s)"
            )
        return res


class MultitaperResult:
    """
    An immutable container for the results of a multitaper analysis.

    Attributes
    ----------
    degrees : np.ndarray
        Spherical-harmonic degrees 0..L-Lt.
    mtse : np.ndarray
        Multitaper (cross-)power spectrum estimate.
    sd : np.ndarray
        Standard error of the estimate (zeros when `sd_defined` is False).
    k : int
        Number of tapers combined.
    sd_defined : bool
        False when a single taper was used.
    relative_error : np.ndarray or None
        sd / |mtse|, None when the standard error is undefined.
    ... and a few others. Use tab-completion to explore.
    """

    def __init__(
        self,
        results_dict: Dict[str, Any],
        config_dict: Dict[str, Any],
        iscsd: bool,
    ):
        """Initializes the result object."""
        self._data = results_dict
        self._config = config_dict
        self.iscsd = iscsd
        self._cache: Dict[str, Any] = {}

        # Ensure all list-based data from dict are numpy arrays
        for key, value in self._data.items():
            if isinstance(value, list):
                self._data[key] = np.array(value)

    def __getattr__(self, name: str) -> Any:
        """Lazy computation and caching of derived quantities."""
        if name.startswith("__") or name in ("_data", "_config", "_cache"):
            raise AttributeError(name)
        if name in self._cache:
            return self._cache[name]

        val: Any = None
        if name == "relative_error":
            if self._data["sd_defined"]:
                mtse = self._data["mtse"]
                val = np.divide(
                    self._data["sd"],
                    np.abs(mtse),
                    out=np.full_like(mtse, np.inf),
                    where=mtse != 0,
                )
        elif name == "lower":
            val = self._data["mtse"] - self._data["sd"]
        elif name == "upper":
            val = self._data["mtse"] + self._data["sd"]
        elif name == "lmax":
            val = self._config["lmax"]
        elif name == "lmaxt":
            val = self._config["lmaxt"]
        elif name in self._data:
            val = self._data[name]
        else:
            raise AttributeError(
                f"'{type(self).__name__}' object has no attribute '{name}'"
            )

        self._cache[name] = val
        return val

    def __dir__(self) -> List[str]:
        """Enhances tab-completion to include dynamic attributes."""
        default_attrs = super().__dir__()
        dynamic_attrs = ["relative_error", "lower", "upper", "lmax", "lmaxt"]
        return sorted(
            list(set(default_attrs + list(self._data.keys()) + dynamic_attrs))
        )

    def get_measurement(self, degree: Union[int, np.ndarray], which: str = "mtse") -> Union[float, np.ndarray]:
        """
        Returns a quantity at the given degree(s).

        Parameters
        ----------
        degree : int or np.ndarray
            Degree(s) within 0..L-Lt.
        which : str, optional
            Name of the quantity ('mtse', 'sd', 'relative_error', ...).
        """
        target = getattr(self, which)
        if target is None:
            raise ValueError(f"'{which}' is not available for this result.")
        idx = np.asarray(degree)
        if np.any(idx < 0) or np.any(idx > self.degrees[-1]):
            raise IndexError(f"Degree {degree!r} outside 0..{int(self.degrees[-1])}.")
        out = np.asarray(target)[idx]
        return float(out) if np.ndim(out) == 0 else out

    def to_dataframe(self) -> pd.DataFrame:
        """
        Exports the estimate and derived quantities to a pandas DataFrame
        indexed by degree.
        """
        df_dict = {"l": self.degrees, "mtse": self.mtse, "sd": self.sd}
        if self.sd_defined:
            df_dict["relative_error"] = self.relative_error
        df_dict["lower"] = self.lower
        df_dict["upper"] = self.upper
        return pd.DataFrame(df_dict).set_index("l")

    def plot(
        self,
        *,
        ax: Optional[Axes] = None,
        ylabel: Optional[str] = None,
        logy: bool = True,
        errors: bool = True,
        sigma: int = 1,
        **kwargs,
    ) -> Tuple[Figure, Axes]:
        """
        Plots the estimate against degree.

        Parameters
        ----------
        ax : matplotlib.axes.Axes, optional
            An existing Axes object to plot on. If None, a new Figure and Axes
            are created.
        ylabel : str, optional
            Custom label for the y-axis.
        logy : bool, optional
            Logarithmic y-axis (plots |mtse|). Defaults to True.
        errors : bool, optional
            If True (default), shade +/- sigma standard errors around the estimate.
            Ignored when the standard error is undefined.
        sigma : int, optional
            Number of standard errors in the band. Defaults to 1.
        **kwargs
            Passed to `matplotlib.axes.Axes.plot`.

        Returns
        -------
        tuple
            The matplotlib Figure and Axes.
        """
        fig, ax1 = (ax.get_figure(), ax) if ax is not None else plt.subplots()
        y = np.abs(self.mtse) if logy else self.mtse
        ax1.plot(self.degrees, y, **kwargs)
        if logy:
            ax1.set_yscale("log")
        ax1.set_xlabel("Spherical harmonic degree")
        default_label = "Localized cross-power" if self.iscsd else "Localized power"
        ax1.set_ylabel(ylabel if ylabel is not None else default_label)

        if errors and self.sd_defined:
            lower = y - sigma * self.sd
            upper = y + sigma * self.sd
            if logy:
                lower = np.maximum(lower, np.finfo(float).tiny)
            ax1.fill_between(
                self.degrees,
                lower,
                upper,
                alpha=0.3,
                label=f"±{sigma}σ",
                color=kwargs.get("color"),
            )
            ax1.legend()

        fig.tight_layout()
        return fig, ax1


def compute_cross_spectrum(
    cilm1: np.ndarray, cilm2: np.ndarray, tapers: Union[np.ndarray, TaperBank], **kwargs
) -> MultitaperResult:
    """
    Computes a localized multitaper cross-power spectrum in a single call.

    Parameters
    ----------
    cilm1, cilm2 : np.ndarray
        Coefficients of the two fields.
    tapers : np.ndarray or TaperBank
        Taper bank.
    **kwargs :
        Passed to `MultitaperAnalyzer` (`k`, `taper_wt`, `norm`, `csphase`,
        `lmaxt`, `taper_order`, `verbose`, ...).

    Returns
    -------
    MultitaperResult
    """
    # 1. Instantiate the analyzer with all provided parameters
    analyzer = MultitaperAnalyzer(cilm1, tapers, cilm2, **kwargs)

    # 2. Immediately call the compute method
    return analyzer.compute()


def compute_spectrum(
    cilm: np.ndarray, tapers: Union[np.ndarray, TaperBank], **kwargs
) -> MultitaperResult:
    """Same as compute_cross_spectrum for the power spectrum of one field."""
    analyzer = MultitaperAnalyzer(cilm, tapers, **kwargs)
    return analyzer.compute()


def compute_var_opt(
    l: int, tapers: Union[np.ndarray, TaperBank], sff: np.ndarray, **kwargs
) -> VarOptResult:
    """
    Minimum-variance taper weights at degree `l` in a single call.

    Thin wrapper around `sh_mt_var_opt`; accepts the same keyword arguments.
    """
    return sh_mt_var_opt(l, tapers, sff, **kwargs)
