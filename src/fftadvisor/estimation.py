"""
Memory footprint estimates for concrete transforms.

no plan is ever created here; sizes are derived analytically from the
transform's shape and the same kernel model the size search uses.
"""

import logging
from typing import Any, Dict, Tuple

import psutil

from .factorization import DEFAULT_VERSION, CudaVersion, get_invocations
from .transform import Transform

logger = logging.getLogger("fftadvisor.estimation")

BYTES_PER_MB = 1024 ** 2
PLAN_OVERHEAD_B = 1024  # bookkeeping per transformed axis

# Memory thresholds (in GB)
LOW_MEMORY_THRESHOLD = 4
HIGH_MEMORY_THRESHOLD = 16

# Cache for system info to avoid repeated calls
_system_info_cache: Dict[str, Any] = {}


def to_mb(size_b: int) -> float:
    return size_b / BYTES_PER_MB


def _factor_exponents(length: int) -> Tuple[int, ...]:
    """Exponents of 2, 3, 5, 7 in length; any other factor is ignored."""
    exponents = []
    for p in (2, 3, 5, 7):
        e = 0
        while length > 1 and length % p == 0:
            length //= p
            e += 1
        exponents.append(e)
    return tuple(exponents)


def estimate_plan_size(transform: Transform,
                       version: CudaVersion = DEFAULT_VERSION) -> Tuple[int, int]:
    """
    Two estimates of the working memory a transform's plan needs.

    the first is scratch space: a transform whose axes need more than one
    kernel launch ping-pongs through a buffer of the output's size. the
    second covers twiddle factors and plan bookkeeping, held once per plan
    (one plan per image unless batched).

    Args:
        transform: concrete transform variant
        version: accelerator API version for the kernel model

    Returns:
        (scratch_bytes, plan_bytes)
    """
    axes = (transform.X, transform.Y, transform.Z)[:transform.rank]

    multi_pass = any(
        get_invocations(_factor_exponents(length), transform.is_float, version) > 1
        for length in axes)
    scratch_b = transform.out_elems * transform.complex_elem_size_b if multi_pass else 0

    plan_b = sum(length * transform.complex_elem_size_b + PLAN_OVERHEAD_B for length in axes)
    if not transform.is_batched:
        plan_b *= transform.N

    return scratch_b, plan_b


def total_size_mb(transform: Transform, estimates: Tuple[int, int]) -> float:
    """Raw data plus the larger working-memory estimate, in MB."""
    return to_mb(transform.data_size_b + max(estimates))


def get_system_info() -> Dict[str, Any]:
    """
    Get information about the host memory.

    Returns:
        Dict with total and available memory in GB
    """
    if _system_info_cache:
        return _system_info_cache

    memory = psutil.virtual_memory()
    _system_info_cache.update({
        'total_memory_gb': memory.total / (1024**3),
        'available_memory_gb': memory.available / (1024**3),
    })
    return _system_info_cache


def clear_cache():
    """Clear cached information to force re-calculation."""
    _system_info_cache.clear()


def get_memory_limit_mb() -> int:
    """
    Default memory budget in MB when the caller gives none.

    Returns:
        A fraction of the available memory, smaller on smaller machines
    """
    available_gb = get_system_info()['available_memory_gb']

    if available_gb < LOW_MEMORY_THRESHOLD:
        fraction = 0.25
    elif available_gb < HIGH_MEMORY_THRESHOLD:
        fraction = 0.5
    else:
        fraction = 0.75

    limit = int(available_gb * fraction * 1024)
    logger.debug(f"Default memory budget {limit} MB ({available_gb:.1f} GB available)")
    return limit
