"""
Cylindrical projections.

The native reference point is ``(phi0, theta0) = (0, 0)``; ``x`` is
proportional to ``phi`` and ``y`` depends on ``theta`` only.
"""

import math

import torch

from ..exceptions import BadProjectionParameterError
from ..numeric import DOUBLE_TOLERANCE, HALF_PI, almost_equal, safe_asin
from .base import BEYOND, Projection, ProjectionParameter, fail, ok_status


class CylindricalProjection(Projection):
    """Cylindrical family, also the base of the pseudo-cylindrical all-sky projections."""

    family = "cylindrical"
    phi0 = 0.0
    theta0 = 0.0

    def _native_domain(self, phi, theta):
        return phi.abs() <= math.pi + DOUBLE_TOLERANCE


class CAR(CylindricalProjection):
    """Plate carree: plane coordinates are the native coordinates."""

    code = "CAR"
    name = "plate carree"

    def _project(self, x, y):
        status = fail(ok_status(y), y.abs() > HALF_PI + DOUBLE_TOLERANCE, BEYOND)
        return x, y.clamp(-HALF_PI, HALF_PI), status

    def _project_inverse(self, phi, theta):
        return phi, theta


class MER(CylindricalProjection):
    """Mercator projection; the poles are at infinity."""

    code = "MER"
    name = "Mercator"

    def _project(self, x, y):
        return x, 2.0 * torch.atan(torch.exp(y)) - HALF_PI, ok_status(y)

    def _project_inverse(self, phi, theta):
        return phi, torch.log(torch.tan(0.5 * (HALF_PI + theta)))

    def _native_domain(self, phi, theta):
        return super()._native_domain(phi, theta) & (theta.abs() < HALF_PI - DOUBLE_TOLERANCE)


class CEA(CylindricalProjection):
    """Cylindrical equal area projection, ``lam`` scales the standard parallel."""

    code = "CEA"
    name = "cylindrical equal area"
    parameters = (ProjectionParameter("lam", "PV2_1", (0.0, 1.0), 1.0),)

    def _configure(self, values):
        lam = values["lam"]
        if lam <= DOUBLE_TOLERANCE:
            raise BadProjectionParameterError(f"CEA: lambda = {lam}", self.code)
        return {"lam": lam}

    def _project(self, x, y):
        s = self.lam * y
        status = fail(ok_status(y), s.abs() > 1.0 + DOUBLE_TOLERANCE, BEYOND)
        return x, safe_asin(s), status

    def _project_inverse(self, phi, theta):
        return phi, torch.sin(theta) / self.lam


class CYP(CylindricalProjection):
    """
    Cylindrical perspective projection.

    ``mu`` is the distance of the perspective point from the axis and ``lam``
    the radius of the cylinder, both in sphere radii.
    """

    code = "CYP"
    name = "cylindrical perspective"
    parameters = (
        ProjectionParameter("mu", "PV2_1", (-math.inf, math.inf), 1.0),
        ProjectionParameter("lam", "PV2_2", (-math.inf, math.inf), 1.0),
    )

    def _configure(self, values):
        mu, lam = values["mu"], values["lam"]
        if almost_equal(lam, 0.0) or almost_equal(mu, -lam):
            raise BadProjectionParameterError(f"CYP: mu = {mu}, lambda = {lam}", self.code)
        return {"mu": mu, "lam": lam}

    def _project(self, x, y):
        eta = y / (self.mu + self.lam)
        s = eta * self.mu / torch.sqrt(eta * eta + 1.0)
        status = fail(ok_status(y), s.abs() > 1.0 + DOUBLE_TOLERANCE, BEYOND)
        theta = torch.atan2(eta, torch.ones_like(eta)) + safe_asin(s)
        return x / self.lam, theta, status

    def _project_inverse(self, phi, theta):
        y = (self.mu + self.lam) * torch.sin(theta) / (self.mu + torch.cos(theta))
        return self.lam * phi, y

    def _native_domain(self, phi, theta):
        cos_theta = torch.cos(theta)
        d = self.mu + cos_theta
        # the inverse sine in _project returns the branch where
        # (1 + mu cos(theta)) / (mu + cos(theta)) is not negative
        branch = (1.0 + self.mu * cos_theta) * torch.sign(d) > -DOUBLE_TOLERANCE
        return (
            super()._native_domain(phi, theta)
            & (theta.abs() <= HALF_PI + DOUBLE_TOLERANCE)
            & (d.abs() > DOUBLE_TOLERANCE)
            & branch
        )
