"""
Coordinate mapping from the 0..1000 box space onto pixel canvases.
"""

import pytest

from driftguard.geometry.boxes import (
    NormBox, PixelRect, box_from_xywh, box_from_yxyx, box_to_yxyx, boxes_intersect, coerce_box, map_box,
)


class TestMapBox:
    def test_unmirrored_scales_each_axis(self):
        r = map_box([100, 200, 300, 400], 1280, 720)
        assert r == pytest.approx((128.0, 144.0, 384.0, 288.0))

    def test_mirrored_reflects_horizontal_position(self):
        w, h = 1280, 720
        r = map_box([100, 200, 300, 400], w, h, mirrored=True)
        assert r.x == pytest.approx(w - (100 / 1000 * w + 300 / 1000 * w))
        assert r.y == pytest.approx(144.0)
        assert r.width == pytest.approx(384.0)

    def test_mirroring_twice_is_identity_on_the_normalized_box(self):
        box = NormBox(250, 100, 100, 50)
        once = map_box(box, 1000, 1000, mirrored=True)
        flipped = NormBox(once.x, once.y, once.width, once.height)
        again = map_box(flipped, 1000, 1000, mirrored=True)
        assert again == pytest.approx(tuple(box))

    def test_full_frame_box_covers_canvas(self):
        assert map_box([0, 0, 1000, 1000], 640, 480, mirrored=True) == pytest.approx((0, 0, 640, 480))

    @pytest.mark.parametrize("bad", [None, [1, 2, 3], "abcd", [1, 2, "x", 4], [0, 0, float("nan"), 1], [0, 0, -5, 10]])
    def test_malformed_box_yields_none(self, bad):
        assert map_box(bad, 640, 480) is None

    @pytest.mark.parametrize("w,h", [(0, 480), (640, -1), (float("inf"), 480), ("x", 480)])
    def test_bad_canvas_yields_none(self, w, h):
        assert map_box([0, 0, 10, 10], w, h) is None

    def test_pixel_rect_corners(self):
        assert PixelRect(10.4, 20.6, 100, 50).as_int() == (10, 21, 110, 71)


class TestAdapters:
    def test_yxyx_converts_to_corner_and_size(self):
        assert box_from_yxyx([200, 300, 500, 600]) == NormBox(300, 200, 300, 300)

    def test_yxyx_rejects_inverted_corners(self):
        assert box_from_yxyx([500, 300, 200, 600]) is None

    def test_yxyx_round_trip(self):
        assert box_to_yxyx(NormBox(300, 200, 300, 300)) == [200, 300, 500, 600]

    def test_xywh_rejects_negative_size(self):
        assert box_from_xywh([10, 10, -1, 5]) is None

    def test_coerce_passes_normbox_through(self):
        b = NormBox(1, 2, 3, 4)
        assert coerce_box(b) is b


class TestIntersection:
    def test_overlapping_boxes(self):
        assert boxes_intersect(NormBox(0, 0, 100, 100), NormBox(50, 50, 100, 100))

    def test_touching_edges_do_not_intersect(self):
        assert not boxes_intersect(NormBox(0, 0, 100, 100), NormBox(100, 0, 50, 50))

    def test_malformed_never_intersects(self):
        assert not boxes_intersect(None, NormBox(0, 0, 10, 10))
