"""
Polyconic and pseudoconic projections: BON, PCO.
"""

import math

import torch

from ..numeric import DOUBLE_TOLERANCE, HALF_PI, almost_equal, atan2_safe, solve_bisection
from .allsky import sanson_flamsteed_to_native, sanson_flamsteed_to_plane
from .base import BEYOND, UNSOLVED, Projection, ProjectionParameter, fail, ok_status


class PolyconicProjection(Projection):
    """Polyconic family, native reference point ``(0, 0)``."""

    family = "polyconic"
    phi0 = 0.0
    theta0 = 0.0

    def _native_domain(self, phi, theta):
        return phi.abs() <= math.pi + DOUBLE_TOLERANCE


class BON(PolyconicProjection):
    """
    Bonne's equal area projection.

    ``theta1 = 0`` degenerates to the Sanson-Flamsteed projection.
    """

    code = "BON"
    name = "Bonne's equal area"
    parameters = (ProjectionParameter("theta1", "PV2_1", (-90.0, 90.0), None),)

    def _configure(self, values):
        theta1 = math.radians(values["theta1"])
        if almost_equal(theta1, 0.0):
            return {"theta1": 0.0, "_y0": 0.0}
        return {"theta1": theta1, "_y0": 1.0 / math.tan(theta1) + theta1}

    def _project(self, x, y):
        if self.theta1 == 0.0:
            return sanson_flamsteed_to_native(x, y)
        dy = self._y0 - y
        r = math.copysign(1.0, self.theta1) * torch.hypot(x, dy)
        theta = self._y0 - r
        status = fail(ok_status(r), theta.abs() > HALF_PI + DOUBLE_TOLERANCE, BEYOND)
        theta = theta.clamp(-HALF_PI, HALF_PI)

        r_safe = torch.where(r.abs() < DOUBLE_TOLERANCE, torch.ones_like(r), r)
        a = atan2_safe(x / r_safe, dy / r_safe)
        cos_theta = torch.cos(theta)
        at_pole = cos_theta.abs() < DOUBLE_TOLERANCE
        phi = torch.where(
            at_pole,
            torch.zeros_like(a),
            a * r / torch.where(at_pole, torch.ones_like(cos_theta), cos_theta),
        )
        return phi, theta, status

    def _project_inverse(self, phi, theta):
        if self.theta1 == 0.0:
            return sanson_flamsteed_to_plane(phi, theta)
        r = self._y0 - theta
        at_apex = r.abs() < DOUBLE_TOLERANCE
        a = torch.where(
            at_apex,
            torch.zeros_like(r),
            phi * torch.cos(theta) / torch.where(at_apex, torch.ones_like(r), r),
        )
        return r * torch.sin(a), -r * torch.cos(a) + self._y0


class PCO(PolyconicProjection):
    """
    Polyconic projection.

    The forward direction has no closed form; ``theta`` is found by bisection
    on ``x**2 + (y - theta) * (y - theta - 2 * cot(theta)) = 0``, which is
    symmetric under ``(y, theta) -> (-y, -theta)``.
    """

    code = "PCO"
    name = "polyconic"

    def _project(self, x, y):
        # y exceeds 90 deg away from the central meridian, theta never does
        y_abs = y.abs()
        equator = y_abs < DOUBLE_TOLERANCE
        pole = ((y_abs - HALF_PI).abs() < DOUBLE_TOLERANCE) & (x.abs() < DOUBLE_TOLERANCE)

        def residual(t):
            d = y_abs - t
            return x * x + d * (d - 2.0 * torch.cos(t) / torch.sin(t))

        theta, converged = solve_bisection(
            residual, torch.zeros_like(y_abs), y_abs.clamp(max=HALF_PI)
        )
        solved = converged | equator | pole
        status = fail(ok_status(y), ~solved, UNSOLVED)

        tan_theta = torch.tan(theta)
        sin_theta = torch.sin(theta)
        tiny = sin_theta.abs() < DOUBLE_TOLERANCE
        phi = atan2_safe(x * tan_theta, 1.0 - (y_abs - theta) * tan_theta) / torch.where(
            tiny, torch.ones_like(sin_theta), sin_theta
        )
        phi = torch.where(tiny, x, phi)

        phi = torch.where(equator, x, torch.where(pole, torch.zeros_like(x), phi))
        theta = torch.where(equator, torch.zeros_like(y), torch.where(pole, y_abs, theta))
        return phi, torch.copysign(theta, y), status

    def _project_inverse(self, phi, theta):
        equator = theta.abs() < DOUBLE_TOLERANCE
        t = torch.where(equator, torch.ones_like(theta), theta)
        cot = torch.cos(t) / torch.sin(t)
        e = phi * torch.sin(t)
        x = torch.where(equator, phi, cot * torch.sin(e))
        y = torch.where(equator, torch.zeros_like(theta), t + cot * (1.0 - torch.cos(e)))
        return x, y
