"""
Transform descriptions: what the caller asks for, and what can actually run.

a GeneralTransform is the caller's request, possibly leaving properties open
via Tristate.BOTH. a Transform is one fully resolved variant with a known
raw data size. generate() widens the former into the latter.
"""

import itertools
import logging
from dataclasses import dataclass, replace
from enum import IntEnum
from typing import List, Union

import numpy as np

from .tristate import Tristate, expand

logger = logging.getLogger("fftadvisor.transform")

Flag = Union[Tristate, bool, str, None]


class Rank(IntEnum):
    RANK_1D = 1
    RANK_2D = 2
    RANK_3D = 3


def _rank_of(X: int, Y: int, Z: int) -> Rank:
    if Z > 1:
        return Rank.RANK_3D
    if Y > 1:
        return Rank.RANK_2D
    return Rank.RANK_1D


@dataclass(frozen=True)
class GeneralTransform:
    """
    Requested transform: shape, image count and (possibly open) properties.

    Attributes:
        device: accelerator the transform is meant for
        X, Y, Z: axis lengths, Y and Z may be 1
        N: number of images to process
        is_batched: process all images with a single batched plan
        is_float: single precision, otherwise double
        is_forward: forward direction, otherwise inverse
        is_in_place: in-place, otherwise out-of-place
        is_real: real input (R2C / C2R), otherwise C2C
    """
    device: int
    X: int
    Y: int
    Z: int
    N: int = 1
    is_batched: Flag = Tristate.BOTH
    is_float: Flag = Tristate.BOTH
    is_forward: Flag = Tristate.BOTH
    is_in_place: Flag = Tristate.BOTH
    is_real: Flag = Tristate.BOTH

    def __post_init__(self):
        for name in ('is_batched', 'is_float', 'is_forward', 'is_in_place', 'is_real'):
            object.__setattr__(self, name, Tristate.from_value(getattr(self, name)))

    @property
    def rank(self) -> Rank:
        return _rank_of(self.X, self.Y, self.Z)

    @property
    def dim_size(self) -> int:
        return self.X * self.Y * self.Z

    def with_size(self, X: int, Y: int, Z: int) -> 'GeneralTransform':
        """Copy of this request with the axis lengths replaced."""
        return replace(self, X=X, Y=Y, Z=Z)

    def with_precision(self, is_float: Flag) -> 'GeneralTransform':
        return replace(self, is_float=is_float)


@dataclass(frozen=True)
class Transform:
    """A concrete transform variant, every property resolved."""
    device: int
    X: int
    Y: int
    Z: int
    N: int
    is_batched: bool
    is_float: bool
    is_forward: bool
    is_in_place: bool
    is_real: bool

    @property
    def rank(self) -> Rank:
        return _rank_of(self.X, self.Y, self.Z)

    @property
    def dim_size(self) -> int:
        return self.X * self.Y * self.Z

    @property
    def elem_size_b(self) -> int:
        """Size of one real scalar in bytes."""
        return np.dtype(np.float32 if self.is_float else np.float64).itemsize

    @property
    def complex_elem_size_b(self) -> int:
        return 2 * self.elem_size_b

    @property
    def in_elems(self) -> int:
        """Number of input elements (real scalars for R2C, complex otherwise)."""
        if self.is_real and not self.is_forward:
            return self._half_spectrum_elems()
        return self.dim_size * self.N

    @property
    def out_elems(self) -> int:
        if self.is_real and self.is_forward:
            return self._half_spectrum_elems()
        return self.dim_size * self.N

    @property
    def in_size_b(self) -> int:
        if self.is_real and self.is_forward:
            return self.in_elems * self.elem_size_b
        return self.in_elems * self.complex_elem_size_b

    @property
    def out_size_b(self) -> int:
        if self.is_real and not self.is_forward:
            return self.out_elems * self.elem_size_b
        return self.out_elems * self.complex_elem_size_b

    @property
    def data_size_b(self) -> int:
        """Raw buffer size; in-place transforms pad the real side to the complex one."""
        if self.is_in_place:
            return max(self.in_size_b, self.out_size_b)
        return self.in_size_b + self.out_size_b

    def _half_spectrum_elems(self) -> int:
        # hermitian symmetry: only X//2+1 complex values along the innermost axis
        return (self.X // 2 + 1) * self.Y * self.Z * self.N

    def describe(self) -> str:
        precision = 'float' if self.is_float else 'double'
        kind = ('R2C' if self.is_forward else 'C2R') if self.is_real else 'C2C'
        direction = 'forward' if self.is_forward else 'inverse'
        layout = 'in-place' if self.is_in_place else 'out-of-place'
        batching = 'batched' if self.is_batched else 'single'
        return (f"{self.X}x{self.Y}x{self.Z} N={self.N} {precision} {kind} "
                f"{direction} {layout} {batching} data={self.data_size_b}B")


def generate(device: int, X: int, Y: int, Z: int, N: int,
             is_batched: Flag, is_float: Flag, is_forward: Flag,
             is_in_place: Flag, is_real: Flag) -> List[Transform]:
    """
    Produce every concrete variant consistent with the given properties.

    each BOTH flag doubles the number of variants.

    Returns:
        List of Transform objects in a deterministic order
    """
    flags = [Tristate.from_value(f) if not isinstance(f, bool) else f
             for f in (is_batched, is_float, is_forward, is_in_place, is_real)]
    variants = [
        Transform(device, X, Y, Z, N, batched, single, forward, in_place, real)
        for batched, single, forward, in_place, real
        in itertools.product(*(expand(f) for f in flags))
    ]
    logger.debug(f"Generated {len(variants)} variants for {X}x{Y}x{Z} N={N}")
    return variants


def transpose(tr: GeneralTransform) -> List[GeneralTransform]:
    """
    Axis orders worth searching in addition to the requested one.

    only active axes (those of the request's rank) are permuted; the
    requested order comes first and duplicates are dropped.
    """
    rank = tr.rank
    axes = (tr.X, tr.Y, tr.Z)[:rank]
    rest = (tr.X, tr.Y, tr.Z)[rank:]
    orders = dict.fromkeys(itertools.permutations(axes))
    return [tr.with_size(*(order + rest)) for order in orders]
