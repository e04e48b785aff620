"""
Pseudo-cylindrical and all-sky projections: SFL, PAR, MOL, AIT.

They share the cylindrical native reference point ``(0, 0)`` and cover the
whole sphere within ``|phi| <= 180 deg``.
"""

import math

import torch
from torch import Tensor

from ..numeric import DOUBLE_TOLERANCE, HALF_PI, safe_asin, solve_bisection
from .base import BEYOND, UNSOLVED, fail, ok_status
from .cylindrical import CylindricalProjection

SQRT2 = math.sqrt(2.0)


def sanson_flamsteed_to_native(x: Tensor, y: Tensor):
    """Sanson-Flamsteed plane to native coordinates, shared with BON at ``theta1 = 0``."""
    status = fail(ok_status(y), y.abs() > HALF_PI + DOUBLE_TOLERANCE, BEYOND)
    cos_y = torch.cos(y)
    at_pole = cos_y.abs() < DOUBLE_TOLERANCE
    # at the poles only x = 0 is on the projection
    status = fail(status, at_pole & (x.abs() > DOUBLE_TOLERANCE), BEYOND)
    phi = torch.where(at_pole, torch.zeros_like(x), x / torch.where(at_pole, torch.ones_like(cos_y), cos_y))
    return phi, y.clamp(-HALF_PI, HALF_PI), status


def sanson_flamsteed_to_plane(phi: Tensor, theta: Tensor):
    return phi * torch.cos(theta), theta


class SFL(CylindricalProjection):
    """Sanson-Flamsteed (global sinusoidal) projection."""

    code = "SFL"
    name = "Sanson-Flamsteed"

    def _project(self, x, y):
        return sanson_flamsteed_to_native(x, y)

    def _project_inverse(self, phi, theta):
        return sanson_flamsteed_to_plane(phi, theta)


class PAR(CylindricalProjection):
    """Parabolic projection."""

    code = "PAR"
    name = "parabolic"

    def _project(self, x, y):
        s = y / math.pi
        status = fail(ok_status(y), s.abs() > 0.5 + DOUBLE_TOLERANCE, BEYOND)
        theta = 3.0 * safe_asin(s.clamp(-0.5, 0.5))
        t = 1.0 - 4.0 * s * s
        at_pole = t.abs() < DOUBLE_TOLERANCE
        status = fail(status, at_pole & (x.abs() > DOUBLE_TOLERANCE), BEYOND)
        phi = torch.where(at_pole, torch.zeros_like(x), x / torch.where(at_pole, torch.ones_like(t), t))
        return phi, theta, status

    def _project_inverse(self, phi, theta):
        x = phi * (2.0 * torch.cos(theta * (2.0 / 3.0)) - 1.0)
        y = math.pi * torch.sin(theta / 3.0)
        return x, y


class MOL(CylindricalProjection):
    """
    Mollweide's projection.

    The inverse direction solves ``v + sin(v) = pi * sin(theta)`` for the
    auxiliary angle ``v = 2 * gamma`` by bisection on [-pi, pi].
    """

    code = "MOL"
    name = "Mollweide"

    def _project(self, x, y):
        s = 2.0 - y * y
        status = fail(ok_status(y), s < -DOUBLE_TOLERANCE, BEYOND)
        at_pole = s <= DOUBLE_TOLERANCE
        status = fail(status, at_pole & (x.abs() > DOUBLE_TOLERANCE), BEYOND)

        root = torch.sqrt(s.clamp(min=0.0))
        phi = torch.where(
            at_pole,
            torch.zeros_like(x),
            HALF_PI * x / torch.where(at_pole, torch.ones_like(root), root),
        )
        z = safe_asin((y / SQRT2).clamp(-1.0, 1.0)) / HALF_PI + y * root / math.pi
        status = fail(status, z.abs() > 1.0 + DOUBLE_TOLERANCE, BEYOND)
        return phi, safe_asin(z.clamp(-1.0, 1.0)), status

    def _project_inverse(self, phi, theta):
        u = math.pi * torch.sin(theta)
        v, converged = solve_bisection(
            lambda v: v + torch.sin(v) - u,
            torch.full_like(u, -math.pi),
            torch.full_like(u, math.pi),
        )
        gamma = 0.5 * v
        x = (2.0 * SQRT2 / math.pi) * phi * torch.cos(gamma)
        y = SQRT2 * torch.sin(gamma)
        return x, y, fail(ok_status(u), ~converged, UNSOLVED)


class AIT(CylindricalProjection):
    """Hammer-Aitoff projection."""

    code = "AIT"
    name = "Hammer-Aitoff"

    def _project(self, x, y):
        u = 1.0 - x * x / 16.0 - y * y / 4.0
        status = fail(ok_status(u), u < 0.5 - DOUBLE_TOLERANCE, BEYOND)
        z = torch.sqrt(u.clamp(min=0.5))
        theta = safe_asin(z * y)
        phi = 2.0 * torch.atan2(0.5 * z * x, 2.0 * z * z - 1.0)
        return phi, theta, status

    def _project_inverse(self, phi, theta):
        cos_theta = torch.cos(theta)
        gamma = torch.sqrt(2.0 / (1.0 + cos_theta * torch.cos(0.5 * phi)))
        x = 2.0 * gamma * cos_theta * torch.sin(0.5 * phi)
        y = gamma * torch.sin(theta)
        return x, y
