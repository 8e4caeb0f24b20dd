import os
os.environ.setdefault("NUMBA_THREADING_LAYER", "workqueue")
os.environ.setdefault("NUMBA_NUM_THREADS", str(max(1, (os.cpu_count() or 1))))
os.environ.setdefault("OMP_NUM_THREADS", "1")
os.environ.setdefault("MKL_NUM_THREADS", "1")
os.environ.setdefault("OPENBLAS_NUM_THREADS", "1")

from .analysis import (
    compute_cross_spectrum,
    compute_spectrum,
    compute_var_opt,
    MultitaperAnalyzer,
    MultitaperResult
)
from .covariance import taper_covariance
from .errors import (
    MultitaperError,
    DimensionError,
    InvalidParameterError,
    InvalidBandwidthError,
    SingularCovarianceError,
    AllocationError,
)
from .multitaper import MultitaperEstimate, sh_multitaper_mask_cse, sh_multitaper_mask_se
from .quadrature import QuadratureCache, thread_cache
from .tapers import TaperBank
from .transforms import (
    synthesize,
    analyze,
    cross_power,
    power_spectrum,
    vector_to_cilm,
    cilm_to_vector,
)
from .weights import VarOptResult, sh_mt_var_opt, var_opt_from_covariance
