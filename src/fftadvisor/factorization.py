"""
Candidate axis lengths built from small primes.

FFT kernels on accelerators are fastest for lengths of the form
2^a * 3^b * 5^c * 7^d. this module enumerates such lengths around a
requested axis length, estimates how many kernel launches each would need,
and reduces the candidates to a short list worth combining across axes.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from operator import attrgetter
from typing import Dict, List, Sequence, Tuple, Union

import numpy as np

logger = logging.getLogger("fftadvisor.factorization")

PRIMES = (2, 3, 5, 7)

# filter thresholds for the 1D/2D search
INVOCATION_SLACK = 2   # keep candidates up to this many launches above the best
MAX_PRIMES = 4         # keep candidates using at most this many distinct primes


class AdvisorConfigError(ValueError):
    """Invalid advisor configuration."""


class UnsupportedVersionError(AdvisorConfigError):
    """No kernel model exists for the requested accelerator API version."""


class CudaVersion(Enum):
    V_8 = 'V_8'
    V_9 = 'V_9'

    @classmethod
    def parse(cls, value: Union['CudaVersion', str]) -> 'CudaVersion':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise UnsupportedVersionError(f"Unsupported version of CUDA: {value!r}") from None


DEFAULT_VERSION = CudaVersion.V_8


def _radices(largest: int) -> Tuple[int, ...]:
    return tuple(range(largest, 0, -1))


# largest exponent a single kernel handles per prime, e.g. 2^10 = 1024 in
# single precision. keyed by (version, is_float)
RADIX_TABLES: Dict[Tuple[CudaVersion, bool], Dict[int, Tuple[int, ...]]] = {
    (CudaVersion.V_8, True): {2: _radices(10), 3: _radices(6), 5: _radices(3), 7: _radices(3)},
    (CudaVersion.V_8, False): {2: _radices(9), 3: _radices(5), 5: _radices(3), 7: _radices(3)},
}


def radix_table(version: CudaVersion, is_float: bool) -> Dict[int, Tuple[int, ...]]:
    """Per-prime radix sizes for a version and precision."""
    try:
        return RADIX_TABLES[(version, bool(is_float))]
    except KeyError:
        raise UnsupportedVersionError(f"Unsupported version of CUDA: {version}") from None


def count_invocations(exponent: int, radices: Sequence[int]) -> int:
    """
    Number of kernel launches needed to cover one prime's exponent.

    greedily takes the largest radix not exceeding what is left.
    """
    count = 0
    while exponent > 0:
        for radix in radices:
            if radix <= exponent:
                exponent -= radix
                count += 1
                break
    return count


def get_invocations(exponents: Sequence[int], is_float: bool,
                    version: CudaVersion = DEFAULT_VERSION) -> int:
    """Estimated kernel launches for a length with the given (2, 3, 5, 7) exponents."""
    table = radix_table(version, is_float)
    return sum(count_invocations(int(e), table[p]) for p, e in zip(PRIMES, exponents))


@dataclass(frozen=True)
class Polynom:
    """
    One candidate axis length 2^a * 3^b * 5^c * 7^d.

    Attributes:
        value: the length itself
        exponent2..exponent7: the exponents a, b, c, d
        invocations: estimated kernel launches to transform this length
        no_of_primes: number of distinct primes with non-zero exponent
    """
    value: int
    exponent2: int = 0
    exponent3: int = 0
    exponent5: int = 0
    exponent7: int = 0
    invocations: int = 0
    no_of_primes: int = 0

    @property
    def exponents(self) -> Tuple[int, int, int, int]:
        return (self.exponent2, self.exponent3, self.exponent5, self.exponent7)


# fallback when an axis has no candidates (axis length 1)
UNIT = Polynom(value=1)


def _ceil_log(value: int, base: int) -> int:
    """Smallest e such that base**e >= value."""
    e, power = 0, 1
    while power < value:
        power *= base
        e += 1
    return e


def generate_polys(num: int, is_float: bool, crop: bool,
                   version: CudaVersion = DEFAULT_VERSION) -> List[Polynom]:
    """
    Enumerate candidate lengths for one axis.

    every candidate contains at least one factor of two. when padding,
    candidates lie in [num, next power of two]; when cropping, they are
    at most num.

    Args:
        num: requested axis length
        is_float: single precision (selects the radix table)
        crop: search downwards instead of upwards
        version: accelerator API version

    Returns:
        Unordered list of Polynom candidates, empty for num == 1
    """
    max_pow2 = _ceil_log(num, 2)
    max_value = 2 ** max_pow2
    bounds = [max_pow2] + [_ceil_log(max_value, p) + 1 for p in PRIMES[1:]]

    if max_pow2 == 0:
        return []

    # every exponent combination, a in [1, max_pow2], b/c/d from 0
    exps = np.indices(bounds).reshape(4, -1).T
    exps[:, 0] += 1
    values = np.prod(np.power(np.array(PRIMES, dtype=object), exps.astype(object)), axis=1)

    if crop:
        keep = (values <= num).astype(bool)
    else:
        keep = ((values >= num) & (values <= max_value)).astype(bool)

    result = []
    for value, row in zip(values[keep], exps[keep]):
        row = tuple(int(e) for e in row)
        result.append(Polynom(
            value=int(value),
            exponent2=row[0],
            exponent3=row[1],
            exponent5=row[2],
            exponent7=row[3],
            invocations=get_invocations(row, is_float, version),
            no_of_primes=sum(1 for e in row if e != 0),
        ))

    logger.debug(f"{len(result)} candidates for length {num} ({'crop' if crop else 'pad'})")
    return result


def filter_optimal(polys: Sequence[Polynom]) -> List[Polynom]:
    """
    Reduce candidates to a small set worth combining across axes.

    keeps the smallest candidate plus every candidate within
    INVOCATION_SLACK launches of the cheapest one that uses at most
    MAX_PRIMES distinct primes.

    Returns:
        Candidates sorted by ascending value, one per value, never empty
    """
    if not polys:
        return [UNIT]

    min_inv = polys[0]
    smallest = polys[0]
    for poly in polys[1:]:
        if poly.invocations < min_inv.invocations:
            min_inv = poly
        if poly.value < smallest.value:
            smallest = poly

    chosen = {smallest.value: smallest}
    for poly in polys:
        if (poly.invocations <= min_inv.invocations + INVOCATION_SLACK
                and poly.no_of_primes <= MAX_PRIMES):
            chosen.setdefault(poly.value, poly)

    return sorted(chosen.values(), key=attrgetter('value'))
