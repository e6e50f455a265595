from __future__ import annotations

import unittest

from PIL import Image

from core.errors import InvalidScale
from core.raster import RasterImage
from core.transform import Transform, fit_scale, placement_rect, scaled_size


def blank(w: int, h: int) -> RasterImage:
    return RasterImage.from_pil(Image.new("RGBA", (w, h), (0, 0, 0, 0)))


class FitScaleTests(unittest.TestCase):
    def test_fit_uses_the_tighter_axis(self) -> None:
        self.assertAlmostEqual(fit_scale(blank(200, 100), blank(400, 400)), 0.25)
        self.assertAlmostEqual(fit_scale(blank(300, 120), blank(50, 80)), 1.5)

    def test_fitted_box_spans_one_axis_and_stays_inside(self) -> None:
        cases = [((300, 120), (50, 80)), ((640, 480), (1920, 1080)), ((97, 211), (13, 7))]
        for mask_size, repl_size in cases:
            mask, repl = blank(*mask_size), blank(*repl_size)
            s = fit_scale(mask, repl)
            spans_w = abs(repl.width * s - mask.width) < 1e-9
            spans_h = abs(repl.height * s - mask.height) < 1e-9
            self.assertTrue(spans_w or spans_h, (mask_size, repl_size))

            x, y, w, h = placement_rect(mask.size, repl.size, Transform(scale=s))
            self.assertGreaterEqual(x, 0)
            self.assertGreaterEqual(y, 0)
            self.assertLessEqual(x + w, mask.width)
            self.assertLessEqual(y + h, mask.height)


class TransformTests(unittest.TestCase):
    def test_defaults(self) -> None:
        t = Transform()
        self.assertEqual((t.scale, t.offset_x, t.offset_y), (1.0, 0.0, 0.0))

    def test_edits_return_new_values(self) -> None:
        t = Transform(scale=2.0)
        moved = t.moved_by(3, -4).moved_by(1.5, 0)
        self.assertEqual((moved.offset_x, moved.offset_y), (4.5, -4.0))
        self.assertEqual(t.offset_x, 0.0)
        self.assertEqual(moved.with_scale(0.5).scale, 0.5)
        self.assertEqual(moved.centered(), Transform(scale=2.0))

    def test_placement_is_centered_then_offset(self) -> None:
        self.assertEqual(placement_rect((200, 100), (400, 400), Transform(scale=0.25)), (50, 0, 100, 100))
        self.assertEqual(
            placement_rect((200, 100), (400, 400), Transform(scale=0.25, offset_x=10, offset_y=-5)),
            (60, -5, 100, 100),
        )

    def test_scaled_size_never_collapses(self) -> None:
        self.assertEqual(scaled_size((10, 10), 0.001), (1, 1))
        with self.assertRaises(InvalidScale):
            scaled_size((10, 10), 0)

    def test_scaled_size_rejects_overflowing_scale(self) -> None:
        with self.assertRaises(InvalidScale):
            scaled_size((80, 80), 1e307)


if __name__ == "__main__":
    unittest.main()
