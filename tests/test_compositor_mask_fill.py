from __future__ import annotations

import unittest

import numpy as np
from PIL import Image

from core.compositor import CompositeMode, composite, make_thumbnail
from core.errors import InvalidScale, MissingAsset
from core.raster import RasterImage
from core.transform import Transform, fit_scale


def solid(w: int, h: int, rgba: tuple[int, int, int, int]) -> RasterImage:
    return RasterImage.from_pil(Image.new("RGBA", (w, h), rgba))


def circle_mask(size: int, radius: float) -> RasterImage:
    yy, xx = np.mgrid[0:size, 0:size]
    c = size / 2.0
    inside = (xx + 0.5 - c) ** 2 + (yy + 0.5 - c) ** 2 <= radius * radius
    arr = np.zeros((size, size, 4), dtype=np.uint8)
    arr[..., :3] = 255
    arr[..., 3] = np.where(inside, 255, 0)
    return RasterImage(arr)


def random_rgba(w: int, h: int, seed: int) -> RasterImage:
    rng = np.random.default_rng(seed)
    return RasterImage(rng.integers(0, 256, size=(h, w, 4), dtype=np.uint8))


class CompositorScenarioTests(unittest.TestCase):
    def test_fit_scaled_replacement_fills_centered_block(self) -> None:
        mask = solid(200, 100, (255, 255, 255, 255))
        repl = solid(400, 400, (255, 0, 0, 255))
        scale = fit_scale(mask, repl)
        self.assertAlmostEqual(scale, 0.25)

        out = composite(mask, repl, Transform(scale=scale), CompositeMode.FINAL, nearest_neighbor=True)
        self.assertEqual(out.size, (200, 100))
        px = out.pixels
        # 100x100 scaled block centered horizontally
        self.assertTrue(np.all(px[:, 50:150, 3] == 255))
        self.assertTrue(np.all(px[:, 50:150, 0] == 255))
        self.assertTrue(np.all(px[:, 50:150, 1:3] == 0))
        self.assertTrue(np.all(px[:, :50, 3] == 0))
        self.assertTrue(np.all(px[:, 150:, 3] == 0))

    def test_replacement_fully_fills_mask_when_it_covers_the_frame(self) -> None:
        mask = solid(200, 100, (255, 255, 255, 255))
        repl = solid(400, 200, (255, 0, 0, 255))
        out = composite(mask, repl, Transform(scale=fit_scale(mask, repl)), nearest_neighbor=True)
        self.assertTrue(np.all(out.pixels[..., 3] == 255))
        self.assertTrue(np.all(out.pixels[..., 0] == 255))

    def test_offset_outside_frame_is_fully_transparent(self) -> None:
        mask = solid(200, 100, (255, 255, 255, 255))
        repl = solid(400, 400, (255, 0, 0, 255))
        t = Transform(scale=fit_scale(mask, repl), offset_x=1000, offset_y=1000)
        final = composite(mask, repl, t, CompositeMode.FINAL)
        self.assertTrue(np.all(final.pixels[..., 3] == 0))
        preview = composite(mask, repl, t, CompositeMode.PREVIEW)
        self.assertTrue(np.all(preview.pixels[..., 3] == 0))

    def test_circle_mask_clips_replacement(self) -> None:
        mask = circle_mask(100, 30)
        repl = solid(100, 100, (0, 0, 255, 255))
        out = composite(mask, repl, Transform(scale=1.0), CompositeMode.FINAL)
        inside = mask.alpha == 255
        self.assertTrue(np.all(out.pixels[inside][:, 3] == 255))
        self.assertTrue(np.all(out.pixels[inside][:, :3] == (0, 0, 255)))
        self.assertTrue(np.all(out.pixels[~inside] == 0))


class CompositorPropertyTests(unittest.TestCase):
    def setUp(self) -> None:
        self.mask = random_rgba(64, 48, seed=1)
        # Guarantee fully opaque and fully empty regions
        arr = self.mask.pixels.copy()
        arr[10:30, 10:30, 3] = 255
        arr[35:, :, 3] = 0
        self.mask = RasterImage(arr)
        self.repl = random_rgba(50, 70, seed=2)
        self.transform = Transform(scale=0.8, offset_x=3.4, offset_y=-2.2)

    def test_preview_matches_final_inside_silhouette(self) -> None:
        final = composite(self.mask, self.repl, self.transform, CompositeMode.FINAL)
        preview = composite(self.mask, self.repl, self.transform, CompositeMode.PREVIEW)
        inside = self.mask.alpha == 255
        self.assertTrue(inside.any())
        np.testing.assert_array_equal(preview.pixels[inside], final.pixels[inside])

    def test_preview_edge_alpha_follows_ghost_blend(self) -> None:
        # Same-size placement at scale 1 leaves the replacement pixels untouched
        repl = random_rgba(64, 48, seed=4)
        preview = composite(self.mask, repl, Transform(scale=1.0), CompositeMode.PREVIEW, ghost_opacity=0.3)
        m = self.mask.alpha
        edge = (m > 0) & (m < 255)
        self.assertTrue(edge.any())
        a = repl.alpha.astype(np.float64)
        weight = 0.3 + (1.0 - 0.3) * (m.astype(np.float64) / 255.0)
        expected = np.rint(a * weight).astype(np.uint8)
        np.testing.assert_array_equal(preview.pixels[..., 3][edge], expected[edge])
        np.testing.assert_array_equal(preview.pixels[..., :3][edge], repl.pixels[..., :3][edge])

    def test_final_alpha_is_zero_where_mask_is_empty(self) -> None:
        final = composite(self.mask, self.repl, self.transform, CompositeMode.FINAL)
        empty = self.mask.alpha == 0
        self.assertTrue(empty.any())
        self.assertTrue(np.all(final.pixels[empty] == 0))

    def test_final_alpha_never_exceeds_inputs(self) -> None:
        t = Transform(scale=1.0)
        repl = random_rgba(64, 48, seed=3)
        final = composite(self.mask, repl, t, CompositeMode.FINAL)
        bound = np.minimum(repl.alpha, self.mask.alpha)
        self.assertTrue(np.all(final.pixels[..., 3] <= bound))

    def test_rerender_is_bit_identical(self) -> None:
        for mode in (CompositeMode.PREVIEW, CompositeMode.FINAL):
            a = composite(self.mask, self.repl, self.transform, mode)
            b = composite(self.mask, self.repl, self.transform, mode)
            np.testing.assert_array_equal(a.pixels, b.pixels)

    def test_output_always_has_mask_dimensions(self) -> None:
        for scale in (0.1, 1.0, 7.5):
            out = composite(self.mask, self.repl, Transform(scale=scale), CompositeMode.PREVIEW)
            self.assertEqual(out.size, self.mask.size)

    def test_inputs_are_not_mutated(self) -> None:
        before = self.repl.pixels.copy()
        composite(self.mask, self.repl, self.transform, CompositeMode.PREVIEW)
        np.testing.assert_array_equal(self.repl.pixels, before)


class CompositorGhostTests(unittest.TestCase):
    def test_outside_pixels_are_ghosted_and_edges_blend(self) -> None:
        arr = np.zeros((1, 3, 4), dtype=np.uint8)
        arr[0, :, 3] = [0, 128, 255]
        mask = RasterImage(arr)
        repl = solid(3, 1, (10, 200, 30, 255))

        preview = composite(mask, repl, Transform(scale=1.0), CompositeMode.PREVIEW)
        final = composite(mask, repl, Transform(scale=1.0), CompositeMode.FINAL)
        a_prev = preview.pixels[0, :, 3].astype(int)
        a_final = final.pixels[0, :, 3].astype(int)

        self.assertEqual(a_prev[0], int(np.rint(255 * 0.3)))
        self.assertTrue(np.all(preview.pixels[0, 0, :3] == (10, 200, 30)))
        self.assertEqual(a_final[1], 128)
        # Antialiased edge sits strictly between ghost and full fill
        self.assertGreater(a_prev[1], a_prev[0])
        self.assertGreater(a_prev[1], a_final[1])
        self.assertLess(a_prev[1], 255)
        self.assertEqual(a_prev[2], 255)

    def test_ghost_opacity_is_tunable(self) -> None:
        mask = solid(4, 4, (0, 0, 0, 0))
        repl = solid(4, 4, (255, 255, 255, 255))
        out = composite(mask, repl, Transform(), CompositeMode.PREVIEW, ghost_opacity=0.5)
        self.assertTrue(np.all(out.pixels[..., 3] == 128))
        hidden = composite(mask, repl, Transform(), CompositeMode.PREVIEW, ghost_opacity=0.0)
        self.assertTrue(np.all(hidden.pixels[..., 3] == 0))

    def test_ghost_opacity_out_of_range(self) -> None:
        mask = solid(2, 2, (0, 0, 0, 255))
        with self.assertRaises(ValueError):
            composite(mask, mask, Transform(), CompositeMode.PREVIEW, ghost_opacity=1.5)


class CompositorErrorTests(unittest.TestCase):
    def test_non_positive_scale_is_rejected(self) -> None:
        mask = solid(4, 4, (0, 0, 0, 255))
        for bad in (0.0, -1.0, float("nan")):
            with self.assertRaises(InvalidScale):
                composite(mask, mask, Transform(scale=bad))

    def test_overflowing_scale_is_rejected(self) -> None:
        mask = solid(4, 4, (0, 0, 0, 255))
        repl = solid(80, 80, (0, 255, 0, 255))
        with self.assertRaises(InvalidScale):
            composite(mask, repl, Transform(scale=1e307))

    def test_missing_asset(self) -> None:
        mask = solid(4, 4, (0, 0, 0, 255))
        with self.assertRaises(MissingAsset):
            composite(None, mask, Transform())
        with self.assertRaises(MissingAsset):
            composite(mask, None, Transform())

    def test_huge_scale_only_resamples_visible_window(self) -> None:
        mask = solid(20, 20, (0, 0, 0, 255))
        repl = solid(10, 10, (0, 255, 0, 255))
        out = composite(mask, repl, Transform(scale=50.0), CompositeMode.FINAL, nearest_neighbor=True)
        self.assertEqual(out.size, (20, 20))
        self.assertTrue(np.all(out.pixels[..., 1] == 255))


class ThumbnailTests(unittest.TestCase):
    def test_thumbnail_is_square_and_centered(self) -> None:
        thumb = make_thumbnail(solid(300, 100, (255, 0, 0, 255)), size=150)
        self.assertEqual(thumb.size, (150, 150))
        arr = np.array(thumb)
        self.assertEqual(int(arr[0, 75, 3]), 0)
        self.assertEqual(int(arr[75, 75, 3]), 255)


if __name__ == "__main__":
    unittest.main()
