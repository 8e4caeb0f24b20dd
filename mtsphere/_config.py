import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}.") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a float, got {raw!r}.") from exc


# Ensure OpenBLAS does not oversubscribe CPU cores
if "OPENBLAS_NUM_THREADS" not in os.environ:
    os.environ["OPENBLAS_NUM_THREADS"] = "1"

# Legendre normalization codes
NORM_GEODESY = 1
NORM_SCHMIDT = 2
NORM_UNNORM = 3
NORM_ORTHO = 4

NORM_NAMES = {
    NORM_GEODESY: "geodesy",
    NORM_SCHMIDT: "schmidt",
    NORM_UNNORM: "unnorm",
    NORM_ORTHO: "ortho",
}

# Package defaults, overridable from the environment. Values are validated
# at call time, not here.
DEFAULT_NORM = _env_int("MTSPHERE_DEFAULT_NORM", NORM_GEODESY)
DEFAULT_CSPHASE = _env_int("MTSPHERE_DEFAULT_CSPHASE", 1)

# Smallest reciprocal condition number accepted for a covariance slice
RCOND_MIN = _env_float("MTSPHERE_RCOND", 1e-12)
