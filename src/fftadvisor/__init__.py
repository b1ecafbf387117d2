"""
fftadvisor: pick Fourier transform sizes that accelerators handle well.

FFT libraries are dramatically faster on lengths that factor into 2, 3, 5
and 7. given an awkward transform size, this package searches nearby
friendly sizes, checks which concrete variants fit into a memory budget
and ranks them by expected performance. nothing is executed; all
estimates are analytic.

Basic usage:
    import fftadvisor

    # Best sizes for a 1000x1000 transform, growing by at most 10%
    for t in fftadvisor.recommend(1000, 1000, max_perc_increase=10):
        print(t.describe())

Advanced usage:
    from fftadvisor import GeneralTransform, SizeOptimizer, CudaVersion, Tristate

    tr = GeneralTransform(device=0, X=100, Y=100, Z=100, N=37,
                          is_batched=Tristate.TRUE, is_real=Tristate.BOTH)
    optimizer = SizeOptimizer(CudaVersion.V_8, tr, allow_transposition=True)
    best = optimizer.optimize(n_best=5, max_perc_increase=10, max_mem_mb=2048,
                              square_only=True, crop=False)
"""

import copy
import logging
import os
from typing import List, Optional

__version__ = '0.1.0'

from .tristate import Tristate, is_, is_not, expand

from .transform import (
    Rank, GeneralTransform, Transform,
    generate, transpose,
)

from .factorization import (
    # Errors
    AdvisorConfigError, UnsupportedVersionError,

    # Kernel model
    CudaVersion, DEFAULT_VERSION, get_invocations,

    # Candidates
    Polynom, UNIT, generate_polys, filter_optimal,
)

from .estimation import (
    estimate_plan_size, get_memory_limit_mb, to_mb,
)

from .optimizer import SizeOptimizer, perf_key, size_key

# Configuration system
_config = {
    # Default configuration
    'search': {
        'n_best': 10,
        'max_perc_increase': 10,  # percent
        'square_only': False,
        'crop': False,
        'allow_transposition': False,
    },
    'memory': {
        'max_mem_mb': None,  # None = derive from available memory
    },
    'cuda': {
        'version': DEFAULT_VERSION.value,
    },
    'logging': {
        'level': 'WARNING',
    }
}


def _update_nested_dict(d, u):
    """Update nested dictionary recursively."""
    for k, v in u.items():
        if isinstance(v, dict) and k in d and isinstance(d[k], dict):
            _update_nested_dict(d[k], v)
        else:
            d[k] = v


def configure(config_dict=None, **kwargs):
    """
    Configure fftadvisor global settings.

    Args:
        config_dict: Dictionary with configuration settings
        **kwargs: Configuration settings as keyword arguments

    Examples:
        # Configure with a dictionary
        fftadvisor.configure({
            'search': {'n_best': 20},
            'memory': {'max_mem_mb': 4096}
        })

        # Or with keyword arguments
        fftadvisor.configure(
            search_square_only=True,
            logging_level='DEBUG'
        )
    """
    if config_dict:
        _update_nested_dict(_config, config_dict)

    # Process kwargs (flattened config)
    for key, value in kwargs.items():
        if '_' in key:
            # Handle nested keys like 'search_n_best'
            section, name = key.split('_', 1)
            if section in _config and name in _config[section]:
                _config[section][name] = value
        elif key in _config:
            _config[key] = value

    _apply_configuration()

    return get_config()


def get_config():
    """Return a copy of the current configuration."""
    return copy.deepcopy(_config)


def _apply_configuration():
    """Apply configuration settings to module components."""
    # fail on bad versions when configured, not at search time
    CudaVersion.parse(_config['cuda']['version'])

    level = getattr(logging, str(_config['logging']['level']).upper(), None)
    if not isinstance(level, int):
        raise AdvisorConfigError(f"Unknown logging level: {_config['logging']['level']!r}")
    logging.getLogger("fftadvisor").setLevel(level)


def _load_env_config():
    """Load configuration from environment variables."""
    # Environment variable prefix
    prefix = "FFTADVISOR_"

    for key, value in os.environ.items():
        if key.startswith(prefix):
            config_key = key[len(prefix):].lower()

            # Try to convert value to appropriate type
            if value.isdigit():
                value = int(value)
            elif value.lower() in ('true', 'yes', 'on'):
                value = True
            elif value.lower() in ('false', 'no', 'off'):
                value = False
            elif value.replace('.', '', 1).isdigit():
                value = float(value)

            configure(**{config_key: value})


def _setup_logging():
    """Set up default logging configuration."""
    logger = logging.getLogger("fftadvisor")
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(getattr(logging, _config['logging']['level']))
        # Don't propagate to root logger
        logger.propagate = False


_setup_logging()
_load_env_config()


def recommend(X: int, Y: int = 1, Z: int = 1, N: int = 1, device: int = 0,
              is_batched=Tristate.BOTH, is_float=Tristate.BOTH,
              is_forward=Tristate.BOTH, is_in_place=Tristate.BOTH,
              is_real=Tristate.BOTH,
              n_best: Optional[int] = None,
              max_perc_increase: Optional[float] = None,
              max_mem_mb: Optional[float] = None,
              square_only: Optional[bool] = None,
              crop: Optional[bool] = None,
              allow_transposition: Optional[bool] = None,
              version=None) -> List[Transform]:
    """
    Recommend transform sizes near X x Y x Z.

    search parameters left as None are taken from the global configuration
    (see configure()); a missing memory budget is derived from the memory
    currently available on this machine.

    Args:
        X, Y, Z: requested axis lengths
        N: number of images
        device: accelerator the transform is meant for
        is_batched, is_float, is_forward, is_in_place, is_real: transform
            properties, each a Tristate, a bool, None or 'true'/'false'/'both'
        n_best: number of results to return
        max_perc_increase: allowed change of the total size in percent
        max_mem_mb: memory budget in MB
        square_only: require equal lengths on all active axes
        crop: shrink instead of grow
        allow_transposition: also search permuted axis orders
        version: accelerator API version (CudaVersion or its name)

    Returns:
        List of concrete Transform objects, best first
    """
    search = _config['search']
    n_best = search['n_best'] if n_best is None else n_best
    max_perc_increase = search['max_perc_increase'] if max_perc_increase is None else max_perc_increase
    square_only = search['square_only'] if square_only is None else square_only
    crop = search['crop'] if crop is None else crop
    if allow_transposition is None:
        allow_transposition = search['allow_transposition']
    if max_mem_mb is None:
        max_mem_mb = _config['memory']['max_mem_mb']
    if max_mem_mb is None:
        max_mem_mb = get_memory_limit_mb()
    version = CudaVersion.parse(_config['cuda']['version'] if version is None else version)

    tr = GeneralTransform(device, X, Y, Z, N, is_batched, is_float,
                          is_forward, is_in_place, is_real)
    optimizer = SizeOptimizer(version, tr, allow_transposition)
    return optimizer.optimize(n_best, max_perc_increase, max_mem_mb, square_only, crop)
