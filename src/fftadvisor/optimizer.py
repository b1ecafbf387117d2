"""
Search for transform sizes that run well and fit in memory.

given a requested transform, the SizeOptimizer looks for nearby shapes
whose axis lengths factor into small primes, expands each shape into
concrete variants, drops those exceeding the memory budget, and ranks the
rest by expected performance.
"""

import functools
import logging
import math
from operator import attrgetter
from typing import Callable, List, Optional, Sequence, Tuple

from . import tristate
from .estimation import estimate_plan_size, total_size_mb
from .factorization import CudaVersion, Polynom, filter_optimal, generate_polys
from .transform import GeneralTransform, Rank, Transform, generate, transpose
from .tristate import Tristate

logger = logging.getLogger("fftadvisor.optimizer")

VariantGenerator = Callable[..., List[Transform]]
Estimator = Callable[[Transform], Tuple[int, int]]


def size_key(t: Transform) -> Tuple[int, int, int, int, int]:
    """Bigger batches first, then smaller shapes, comparing Z, Y, X last."""
    return (-t.N, t.dim_size, t.Z, t.Y, t.X)


def perf_key(t: Transform) -> Tuple:
    """
    Sort key for expected performance, best first.

    single precision, real input, out-of-place and batched variants are
    preferred in that order of importance; ties fall back to size_key.
    """
    return (not t.is_float, not t.is_real, t.is_in_place, not t.is_batched) + size_key(t)


def _pow2_ceil(length: int) -> int:
    return 1 << (length - 1).bit_length()


class SizeOptimizer:
    """
    Advisor for transform sizes.

    holds the request (precision normalised, optionally with its transposed
    variants) and the collaborators used to expand and size concrete
    transforms. no state survives between optimize() calls.
    """

    def __init__(self, version: CudaVersion, tr: GeneralTransform,
                 allow_transposition: bool = False,
                 variant_generator: VariantGenerator = generate,
                 estimator: Optional[Estimator] = None):
        self.version = CudaVersion.parse(version)
        self.variant_generator = variant_generator
        self.estimator = estimator or functools.partial(estimate_plan_size, version=self.version)

        if tr.is_float is Tristate.BOTH:
            # if the caller is not sure they need double, they don't
            tr = tr.with_precision(Tristate.TRUE)
        self.request = tr

        if allow_transposition:
            self.input = transpose(tr)
        else:
            self.input = [tr]

        for request in self.input:
            logger.debug(f"Search input: {request}")

    def optimize(self, n_best: int, max_perc_increase: float, max_mem_mb: float,
                 square_only: bool, crop: bool, rank: Optional[int] = None) -> List[Transform]:
        """
        Find the n_best concrete transforms near the requested one.

        Args:
            n_best: maximum number of results (and of candidates per stage)
            max_perc_increase: allowed change of the total size in percent
            max_mem_mb: memory budget in MB
            square_only: all active axes must have the same length
            crop: shrink instead of grow the requested size
            rank: force the 3D (3) or 1D/2D search; defaults to each
                  request's own rank

        Returns:
            Concrete transforms, best first
        """
        preoptimized = []
        for tr in self.input:
            search_rank = tr.rank if rank is None else rank
            if search_rank == Rank.RANK_3D:
                shapes = self.optimize_xyz_3d(tr, n_best, max_perc_increase, square_only, crop)
            else:
                shapes = self.optimize_xyz_1d_2d(tr, n_best, max_perc_increase, square_only, crop)
            preoptimized.extend(shapes)
        return self.optimize_n(preoptimized, max_mem_mb, n_best)

    # ------------------------------------------------------------------
    # size bounds

    @staticmethod
    def get_min_size(tr: GeneralTransform, max_perc_decrease: float, crop: bool) -> int:
        if not crop:
            return tr.dim_size  # cannot go under the original size
        return max(0, int(tr.dim_size * (100 - max_perc_decrease) // 100))

    @staticmethod
    def get_max_size(tr: GeneralTransform, max_perc_increase: float,
                     square_only: bool, crop: bool) -> int:
        max_x = _pow2_ceil(tr.X)
        max_y = max_x if square_only else _pow2_ceil(tr.Y)
        max_z = max_x if square_only else _pow2_ceil(tr.Z)
        after_perc_inc = int(tr.dim_size * (100 + max_perc_increase) // 100)
        return min(max_x * max_y * max_z, after_perc_inc)

    # ------------------------------------------------------------------
    # shape composition

    @staticmethod
    def _cutter(polys: List[Polynom], crop: bool, n_best: int) -> Tuple[Polynom, ...]:
        """Keep the n_best candidates closest to the request, ascending by value."""
        polys = sorted(polys, key=attrgetter('value'), reverse=crop)[:n_best]
        return tuple(sorted(polys, key=attrgetter('value')))

    def optimize_xyz_3d(self, tr: GeneralTransform, n_best: int, max_perc_increase: float,
                        square_only: bool, crop: bool) -> List[GeneralTransform]:
        """Combine the n_best raw candidates of each axis into 3D shapes."""
        is_float = tristate.is_(tr.is_float)

        def candidates(length):
            polys = generate_polys(length, is_float, crop, self.version)
            return self._cutter(polys, crop, n_best)

        polys_x = candidates(tr.X)
        if tr.X == tr.Y or square_only:
            polys_y = polys_x
        else:
            polys_y = candidates(tr.Y)
        if tr.X == tr.Z or square_only:
            polys_z = polys_x
        elif tr.Y == tr.Z:
            polys_z = polys_y
        else:
            polys_z = candidates(tr.Z)

        return self._compose(tr, polys_x, polys_y, polys_z, n_best, max_perc_increase,
                             square_only, crop, exempt_unit=False)

    def optimize_xyz_1d_2d(self, tr: GeneralTransform, n_best: int, max_perc_increase: float,
                           square_only: bool, crop: bool) -> List[GeneralTransform]:
        """Combine the filtered candidates of each axis into 1D or 2D shapes."""
        is_float = tristate.is_(tr.is_float)

        def candidates(length):
            return tuple(filter_optimal(generate_polys(length, is_float, crop, self.version)))

        polys_x = candidates(tr.X)
        if tr.X == tr.Y or (square_only and tr.Y != 1):
            polys_y = polys_x
        else:
            polys_y = candidates(tr.Y)
        if tr.X == tr.Z or (square_only and tr.Z != 1):
            polys_z = polys_x
        elif tr.Y == tr.Z:
            polys_z = polys_y
        else:
            polys_z = candidates(tr.Z)

        return self._compose(tr, polys_x, polys_y, polys_z, n_best, max_perc_increase,
                             square_only, crop, exempt_unit=True)

    def _compose(self, tr: GeneralTransform, polys_x: Sequence[Polynom],
                 polys_y: Sequence[Polynom], polys_z: Sequence[Polynom],
                 n_best: int, max_perc_increase: float, square_only: bool,
                 crop: bool, exempt_unit: bool) -> List[GeneralTransform]:
        """
        Cross product of per-axis candidates within the size bounds.

        all candidate sequences must be sorted ascending by value. with
        exempt_unit, a candidate of length 1 (an inactive axis) does not
        have to match the other axes when square_only is set.
        """
        min_size = self.get_min_size(tr, max_perc_increase, crop)
        max_size = self.get_max_size(tr, max_perc_increase, square_only, crop)
        logger.debug(f"Composing {tr.X}x{tr.Y}x{tr.Z}: sizes in [{min_size}, {max_size}], "
                     f"{len(polys_x)}/{len(polys_y)}/{len(polys_z)} candidates")

        def mismatch(x, other):
            if not square_only or x.value == other.value:
                return False
            return not (exempt_unit and other.value == 1)

        result = []
        for x in polys_x:
            for y in polys_y:
                if mismatch(x, y):
                    continue
                xy = x.value * y.value
                if xy > max_size:
                    break  # candidates are sorted, the rest is larger still
                for z in polys_z:
                    if mismatch(x, z):
                        continue
                    xyz = xy * z.value
                    if len(result) < n_best and min_size <= xyz <= max_size:
                        result.append(tr.with_size(x.value, y.value, z.value))

        logger.debug(f"Composed {len(result)} shapes for {tr.X}x{tr.Y}x{tr.Z}")
        return result

    # ------------------------------------------------------------------
    # batch search, memory gate and ranking

    def optimize_n(self, transforms: Sequence[GeneralTransform], max_mem_mb: float,
                   n_best: int) -> List[Transform]:
        """Expand shapes into concrete variants that fit in memory and rank them."""
        result: List[Transform] = []
        for gt in transforms:
            if tristate.is_not(gt.is_batched):
                self.collapse(gt, False, gt.N, max_mem_mb, result)
            if tristate.is_(gt.is_batched):
                self.collapse_batched(gt, max_mem_mb, result)

        result.sort(key=perf_key)
        if not result:
            logger.info(f"No transform fits into {max_mem_mb} MB")
        return result[:n_best]

    def collapse_batched(self, gt: GeneralTransform, max_mem_mb: float,
                         result: List[Transform]):
        """
        Find the largest feasible batch not exceeding gt.N.

        doubles the batch while it fits, then walks down one image at a time
        from just below the first failing size. every fitting batch size
        tried is kept in result.
        """
        last_n = current_n = 1
        try_next = True
        while try_next and current_n <= gt.N:
            try_next = self.collapse(gt, True, current_n, max_mem_mb, result)
            if try_next:
                last_n = current_n
                current_n *= 2

        current_n = min(gt.N, current_n - 1)
        try_next = True
        while try_next and current_n > last_n:
            try_next = not self.collapse(gt, True, current_n, max_mem_mb, result)
            current_n -= 1
        logger.debug(f"Batch search for {gt.X}x{gt.Y}x{gt.Z}: probed up to {last_n}")

    def collapse(self, gt: GeneralTransform, is_batched: bool, N: int, max_mem_mb: float,
                 result: List[Transform]) -> bool:
        """
        Add every variant of gt with N images that fits into max_mem_mb.

        Returns:
            Whether at least one variant was added
        """
        updated = False
        for t in self.variant_generator(gt.device, gt.X, gt.Y, gt.Z, N, is_batched,
                                        gt.is_float, gt.is_forward, gt.is_in_place,
                                        gt.is_real):
            total_mb = math.ceil(total_size_mb(t, self.estimator(t)))
            if total_mb <= max_mem_mb:
                result.append(t)
                updated = True
            else:
                logger.debug(f"Rejected {t.describe()}: {total_mb} MB > {max_mem_mb} MB")
        return updated
