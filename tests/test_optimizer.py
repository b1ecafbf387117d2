import unittest

from fftadvisor.estimation import BYTES_PER_MB
from fftadvisor.factorization import CudaVersion, UnsupportedVersionError, generate_polys
from fftadvisor.optimizer import SizeOptimizer, perf_key, size_key
from fftadvisor.transform import GeneralTransform, Transform
from fftadvisor.tristate import Tristate

from sizing_helpers import largest_prime_factor

LARGE_BUDGET_MB = 10 ** 6


def no_workspace(transform):
    return (0, 0)


def request(X, Y=1, Z=1, N=1, **flags):
    defaults = dict(is_batched=False, is_float=True, is_forward=True,
                    is_in_place=False, is_real=False)
    defaults.update(flags)
    return GeneralTransform(0, X, Y, Z, N, **defaults)


class TestRanking(unittest.TestCase):

    def _variant(self, X=64, Y=1, Z=1, N=1, batched=True, single=True,
                 in_place=False, real=True):
        return Transform(0, X, Y, Z, N, batched, single, True, in_place, real)

    def test_property_precedence(self):
        best = self._variant(X=4096, N=1)
        double = self._variant(X=8, N=64, single=False)
        complex_ = self._variant(X=8, N=64, real=False)
        in_place = self._variant(X=8, N=64, in_place=True)
        single_image = self._variant(X=8, N=64, batched=False)
        ranked = sorted([double, single_image, in_place, complex_, best], key=perf_key)
        self.assertEqual(ranked, [best, single_image, in_place, complex_, double])

    def test_size_tie_break(self):
        big_batch = self._variant(X=128, N=8)
        small = self._variant(X=64, Y=2, N=4)
        smaller_z = self._variant(X=32, Y=2, Z=2, N=4)
        larger_z = self._variant(X=16, Y=2, Z=4, N=4)
        larger_shape = self._variant(X=256, N=4)
        ranked = sorted([larger_shape, larger_z, smaller_z, small, big_batch], key=size_key)
        self.assertEqual(ranked, [big_batch, small, smaller_z, larger_z, larger_shape])
        self.assertEqual(sorted([larger_shape, big_batch], key=perf_key),
                         [big_batch, larger_shape])


class TestBounds(unittest.TestCase):

    def test_padding_bounds(self):
        tr = request(100, 100, 100)
        self.assertEqual(SizeOptimizer.get_min_size(tr, 10, False), 10 ** 6)
        self.assertEqual(SizeOptimizer.get_max_size(tr, 10, False, False), 1100000)

    def test_power_of_two_bound(self):
        tr = request(100, 100, 100)
        self.assertEqual(SizeOptimizer.get_max_size(tr, 200, False, False), 128 ** 3)

    def test_cropping_bounds(self):
        tr = request(100, 100, 100)
        self.assertEqual(SizeOptimizer.get_min_size(tr, 10, True), 900000)
        self.assertEqual(SizeOptimizer.get_max_size(tr, 10, False, True), 1100000)
        self.assertEqual(SizeOptimizer.get_min_size(tr, 150, True), 0)


class TestComposition(unittest.TestCase):

    def setUp(self):
        self.optimizer = SizeOptimizer(CudaVersion.V_8, request(100), estimator=no_workspace)

    def test_cube_padding(self):
        tr = request(100, 100, 100)
        shapes = self.optimizer.optimize_xyz_3d(tr, 5, 10, True, False)
        self.assertEqual([(s.X, s.Y, s.Z) for s in shapes], [(100, 100, 100)])

    def test_cube_cropping(self):
        tr = request(100, 100, 100)
        shapes = self.optimizer.optimize_xyz_3d(tr, 5, 30, True, True)
        self.assertEqual([s.X for s in shapes], [90, 96, 98, 100])
        for s in shapes:
            self.assertEqual(s.X, s.Y)
            self.assertEqual(s.X, s.Z)

    def test_cutter_keeps_nearest_candidates(self):
        polys = generate_polys(100, True, crop=True)
        kept = SizeOptimizer._cutter(polys, True, 3)
        self.assertEqual([p.value for p in kept], [96, 98, 100])
        kept = SizeOptimizer._cutter(generate_polys(100, True, crop=False), False, 3)
        self.assertEqual([p.value for p in kept], [100, 108, 112])
        self.assertEqual(len(SizeOptimizer._cutter(polys, True, 100)), len(polys))

    def test_short_candidate_lists(self):
        shapes = self.optimizer.optimize_xyz_3d(request(2, 2, 2), 10, 10, False, False)
        self.assertEqual([(s.X, s.Y, s.Z) for s in shapes], [(2, 2, 2)])

    def test_3d_bounds_and_cap(self):
        tr = request(30, 20, 10)
        min_size = SizeOptimizer.get_min_size(tr, 50, False)
        max_size = SizeOptimizer.get_max_size(tr, 50, False, False)
        shapes = self.optimizer.optimize_xyz_3d(tr, 4, 50, False, False)
        self.assertTrue(0 < len(shapes) <= 4)
        for s in shapes:
            self.assertTrue(min_size <= s.dim_size <= max_size)
            for length in (s.X, s.Y, s.Z):
                self.assertLessEqual(largest_prime_factor(length), 7)

    def test_1d_square_exempts_inactive_axes(self):
        shapes = self.optimizer.optimize_xyz_1d_2d(request(100), 10, 10, True, False)
        self.assertEqual([(s.X, s.Y, s.Z) for s in shapes], [(100, 1, 1), (108, 1, 1)])

    def test_2d_square(self):
        shapes = self.optimizer.optimize_xyz_1d_2d(request(100, 90), 10, 50, True, False)
        self.assertTrue(shapes)
        for s in shapes:
            self.assertEqual(s.X, s.Y)
            self.assertEqual(s.Z, 1)

    def test_2d_bounds(self):
        tr = request(30, 20)
        min_size = SizeOptimizer.get_min_size(tr, 50, False)
        max_size = SizeOptimizer.get_max_size(tr, 50, False, False)
        shapes = self.optimizer.optimize_xyz_1d_2d(tr, 10, 50, False, False)
        self.assertTrue(shapes)
        for s in shapes:
            self.assertTrue(min_size <= s.dim_size <= max_size)
            self.assertEqual(s.Z, 1)
            self.assertEqual(s.X % 2, 0)
            self.assertEqual(s.Y % 2, 0)

    def test_2d_square_cropping_uses_longer_axis_candidates(self):
        # Y shares the candidates of X, so 72x72 may exceed 100x50
        tr = request(100, 50)
        shapes = self.optimizer.optimize_xyz_1d_2d(tr, 10, 10, True, True)
        self.assertEqual([(s.X, s.Y, s.Z) for s in shapes], [(70, 70, 1), (72, 72, 1)])
        self.assertGreater(shapes[-1].dim_size, tr.dim_size)

    def test_3d_square_cropping_uses_longer_axis_candidates(self):
        tr = request(100, 50, 50)
        self.assertEqual(SizeOptimizer.get_max_size(tr, 10, True, True), 275000)
        shapes = self.optimizer.optimize_xyz_3d(tr, 30, 10, True, True)
        self.assertEqual([(s.X, s.Y, s.Z) for s in shapes], [(64, 64, 64)])

    def test_2d_cropping_bounds(self):
        tr = request(100, 50)
        min_size = SizeOptimizer.get_min_size(tr, 20, True)
        max_size = SizeOptimizer.get_max_size(tr, 20, False, True)
        shapes = self.optimizer.optimize_xyz_1d_2d(tr, 10, 20, False, True)
        self.assertEqual(len(shapes), 10)
        for s in shapes:
            self.assertTrue(min_size <= s.dim_size <= max_size)
            self.assertLessEqual(s.X, 100)
            self.assertLessEqual(s.Y, 50)


class TestBatchSearch(unittest.TestCase):

    def test_all_feasible(self):
        tr = request(64, N=37, is_batched=True)
        optimizer = SizeOptimizer(CudaVersion.V_8, tr, estimator=no_workspace)
        result = []
        optimizer.collapse_batched(tr, LARGE_BUDGET_MB, result)
        self.assertEqual([t.N for t in result], [1, 2, 4, 8, 16, 32, 37])
        self.assertTrue(all(t.is_batched for t in result))

    def test_memory_limited(self):
        # N images cost N MB of workspace, so at most 20 fit into 21 MB
        def per_image(transform):
            return (transform.N * BYTES_PER_MB, 0)

        tr = request(64, N=37, is_batched=True)
        optimizer = SizeOptimizer(CudaVersion.V_8, tr, estimator=per_image)
        result = []
        optimizer.collapse_batched(tr, 21, result)
        self.assertEqual([t.N for t in result], [1, 2, 4, 8, 16, 20])

    def test_never_exceeds_request(self):
        tr = request(64, N=5, is_batched=True)
        optimizer = SizeOptimizer(CudaVersion.V_8, tr, estimator=no_workspace)
        result = []
        optimizer.collapse_batched(tr, LARGE_BUDGET_MB, result)
        self.assertEqual(max(t.N for t in result), 5)
        self.assertEqual([t.N for t in result], [1, 2, 4, 5])

    def test_nothing_fits(self):
        tr = request(64, N=8, is_batched=True)
        optimizer = SizeOptimizer(CudaVersion.V_8, tr, estimator=no_workspace)
        result = []
        optimizer.collapse_batched(tr, 0, result)
        self.assertEqual(result, [])

    def test_memory_gate(self):
        tr = request(64)
        optimizer = SizeOptimizer(CudaVersion.V_8, tr, estimator=lambda t: (BYTES_PER_MB, 2 * BYTES_PER_MB))
        result = []
        # 1 KB of data plus 2 MB of workspace rounds up to 3 MB
        self.assertFalse(optimizer.collapse(tr, False, 1, 2, result))
        self.assertTrue(optimizer.collapse(tr, False, 1, 3, result))
        self.assertEqual(len(result), 1)


class TestOptimize(unittest.TestCase):

    def test_precision_normalised(self):
        tr = GeneralTransform(0, 100, 1, 1)
        optimizer = SizeOptimizer(CudaVersion.V_8, tr)
        self.assertIs(optimizer.request.is_float, Tristate.TRUE)
        self.assertIs(tr.is_float, Tristate.BOTH)
        double = SizeOptimizer(CudaVersion.V_8, tr.with_precision(False))
        self.assertIs(double.request.is_float, Tristate.FALSE)

    def test_transposition_inputs(self):
        optimizer = SizeOptimizer(CudaVersion.V_8, request(30, 20), allow_transposition=True)
        self.assertEqual([(t.X, t.Y) for t in optimizer.input], [(30, 20), (20, 30)])
        self.assertEqual(len(SizeOptimizer(CudaVersion.V_8, request(30, 20)).input), 1)

    def test_cube_scenario(self):
        optimizer = SizeOptimizer(CudaVersion.V_8, request(100, 100, 100))
        result = optimizer.optimize(5, 10, LARGE_BUDGET_MB, True, False)
        self.assertTrue(result)
        for t in result:
            self.assertEqual((t.X, t.Y, t.Z), (100, 100, 100))

    def test_zero_budget(self):
        for tr in (request(100), request(100, 90), GeneralTransform(0, 30, 20, 10, N=4)):
            result = SizeOptimizer(CudaVersion.V_8, tr).optimize(10, 20, 0, False, False)
            self.assertEqual(result, [])

    def test_ranked_and_truncated(self):
        tr = GeneralTransform(0, 100, 90, 1, N=6)
        optimizer = SizeOptimizer(CudaVersion.V_8, tr)
        result = optimizer.optimize(7, 30, LARGE_BUDGET_MB, False, False)
        self.assertEqual(len(result), 7)
        self.assertEqual(result, sorted(result, key=perf_key))
        best = result[0]
        self.assertTrue(best.is_float and best.is_real and best.is_batched)
        self.assertFalse(best.is_in_place)
        self.assertEqual(best.N, 6)

    def test_rank_override(self):
        # filtered search on a volume
        optimizer = SizeOptimizer(CudaVersion.V_8, request(30, 20, 10), estimator=no_workspace)
        result = optimizer.optimize(3, 20, LARGE_BUDGET_MB, False, False, rank=2)
        self.assertEqual([(t.X, t.Y, t.Z) for t in result],
                         [(30, 20, 10), (30, 24, 10), (30, 20, 12)])

        # the exhaustive search has no unit fallback for inactive axes
        optimizer = SizeOptimizer(CudaVersion.V_8, request(100, 100), estimator=no_workspace)
        self.assertEqual(optimizer.optimize(3, 20, LARGE_BUDGET_MB, False, False, rank=3), [])

    def test_optimizer_is_reusable(self):
        optimizer = SizeOptimizer(CudaVersion.V_8, request(100, 90))
        first = optimizer.optimize(5, 20, LARGE_BUDGET_MB, False, False)
        second = optimizer.optimize(5, 20, LARGE_BUDGET_MB, False, False)
        self.assertEqual(first, second)

    def test_unsupported_version(self):
        optimizer = SizeOptimizer(CudaVersion.V_9, request(100))
        with self.assertRaises(UnsupportedVersionError):
            optimizer.optimize(5, 10, LARGE_BUDGET_MB, False, False)
        with self.assertRaises(UnsupportedVersionError):
            SizeOptimizer('V_7', request(100))


if __name__ == '__main__':
    unittest.main()
