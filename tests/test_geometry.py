"""Unit tests for affine transforms and rotated bounds."""

import math

import pytest

from sourcesheet.pipeline.geometry import Affine, centre_rotation, polygon_area, rotated_bounds


def _close(p, q, tol=1e-9):
    return abs(p[0] - q[0]) < tol and abs(p[1] - q[1]) < tol


class TestAffine:
    """Test Affine value."""

    def test_identity_leaves_points(self):
        """Identity leaves points unchanged."""
        assert Affine.identity().apply(3.5, -2.0) == (3.5, -2.0)

    def test_composition_applies_right_first(self):
        """(T @ S)(p) scales first, then translates."""
        t = Affine.translate(10, 20)
        s = Affine.scale(2, 3)
        assert (t @ s).apply(1, 1) == (12, 23)
        assert (s @ t).apply(1, 1) == (22, 63)

    def test_rotate_90_is_clockwise_with_y_down(self):
        """Positive angle turns +x toward +y (clockwise on screen)."""
        assert Affine.rotate(90).apply(1, 0) == (0.0, 1.0)
        assert Affine.rotate(90).apply(0, 1) == (-1.0, 0.0)

    def test_right_angles_are_exact(self):
        """Right-angle rotations have exact coefficients."""
        r = Affine.rotate(180)
        assert (r.a, r.b, r.d, r.e) == (-1.0, 0.0, 0.0, -1.0)

    def test_inverse_round_trips(self):
        """Inverse maps a transformed point back."""
        m = Affine.translate(5, -7) @ Affine.rotate(33) @ Affine.scale(2, 0.5)
        x, y = m.apply(12.0, 4.0)
        assert _close(m.inverse().apply(x, y), (12.0, 4.0))

    def test_singular_inverse_raises(self):
        """A singular transform cannot be inverted."""
        with pytest.raises(ValueError):
            Affine.scale(0, 1).inverse()

    def test_affine_is_immutable(self):
        """Affine values cannot be modified."""
        m = Affine.identity()
        with pytest.raises(AttributeError):
            m.a = 2.0


class TestRotatedBounds:
    """Test rotated bounding box formula."""

    @pytest.mark.parametrize("degrees", [0, 45, 90, 135, 180, -30])
    def test_formula(self, degrees):
        """Bounds follow w*|cos| + h*|sin| within rounding."""
        w, h = 450, 160
        theta = math.radians(degrees)
        expected_w = w * abs(math.cos(theta)) + h * abs(math.sin(theta))
        expected_h = w * abs(math.sin(theta)) + h * abs(math.cos(theta))
        bw, bh = rotated_bounds(w, h, degrees)
        assert abs(bw - expected_w) <= 0.5
        assert abs(bh - expected_h) <= 0.5

    def test_quarter_turn_swaps(self):
        """A quarter turn swaps width and height."""
        assert rotated_bounds(300, 100, 90) == (100, 300)
        assert rotated_bounds(300, 100, -90) == (100, 300)

    def test_never_zero(self):
        """Tiny rasters still get a 1x1 canvas."""
        assert rotated_bounds(0.2, 0.2, 0) == (1, 1)


class TestCentreRotation:
    """Test centre rotation maps corners inside the expanded canvas."""

    @pytest.mark.parametrize("degrees", [0, 30, 45, 90, 135, 180])
    def test_corners_stay_on_canvas(self, degrees):
        """All four corners land on the expanded canvas."""
        forward, (cw, ch) = centre_rotation(200, 100, degrees)
        for x, y in forward.apply_all([(0, 0), (200, 0), (0, 100), (200, 100)]):
            assert -0.5 <= x <= cw + 0.5
            assert -0.5 <= y <= ch + 0.5

    def test_centre_maps_to_canvas_centre(self):
        """The source centre maps to the canvas centre."""
        forward, (cw, ch) = centre_rotation(200, 100, 37)
        assert _close(forward.apply(100, 50), (cw / 2.0, ch / 2.0))


def test_polygon_area():
    """Shoelace area, zero for fewer than 3 points."""
    assert polygon_area([(0, 0), (10, 0), (10, 10), (0, 10)]) == 100.0
    assert polygon_area([(0, 0), (10, 0)]) == 0.0
