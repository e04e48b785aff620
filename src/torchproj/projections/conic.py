"""
Conic projections: COP, COE, COD, COO.

A cone is set by two standard parallels given as their mean ``theta_a`` and
half-difference ``eta`` (degrees): ``theta1 = theta_a - eta`` and
``theta2 = theta_a + eta``. The native reference point is ``(0, theta_a)``.
Every member reduces to the cone constant ``c = sin(theta_a)`` when
``eta = 0``.
"""

import math
from typing import Dict, Tuple

import torch
from torch import Tensor

from ..exceptions import BadProjectionParameterError
from ..numeric import DOUBLE_TOLERANCE, HALF_PI, almost_equal, atan2_safe, is_in_interval, safe_asin
from .base import BEYOND, Projection, ProjectionParameter, fail, ok_status


class ConicProjection(Projection):
    """
    Conic family.

    Subclasses return the cone constant ``c`` and the plane offset ``y0`` of
    the reference parallel from ``_cone`` along with any constant they need,
    and implement ``_radius(theta)`` and ``_theta(r) -> (theta, status)``.
    """

    family = "conic"
    parameters = (
        ProjectionParameter("theta_a", "PV2_1", (-90.0, 90.0), None),
        ProjectionParameter("eta", "PV2_2", (-90.0, 90.0), 0.0),
    )

    def _configure(self, values):
        theta_a = math.radians(values["theta_a"])
        eta = math.radians(values["eta"])
        theta1, theta2 = theta_a - eta, theta_a + eta
        for parallel in (theta1, theta2):
            if not is_in_interval(parallel, -HALF_PI, HALF_PI):
                raise BadProjectionParameterError(
                    f"{self.code}: standard parallel {math.degrees(parallel)} outside [-90, 90]",
                    self.code,
                )
        state = {
            "theta_a": theta_a,
            "eta": eta,
            "theta1": theta1,
            "theta2": theta2,
            "theta0": theta_a,
        }
        state.update(self._cone(theta_a, eta, theta1, theta2))
        if almost_equal(state["c"], 0.0):
            raise BadProjectionParameterError(f"{self.code}: cone constant is zero", self.code)
        return state

    def _cone(self, theta_a: float, eta: float, theta1: float, theta2: float) -> Dict[str, float]:
        raise NotImplementedError

    def _require_oblique(self, theta_a: float) -> None:
        if almost_equal(theta_a, 0.0):
            raise BadProjectionParameterError(f"{self.code}: theta_a = 0", self.code)

    def conic_phi(self, x: Tensor, y: Tensor) -> Tuple[Tensor, Tensor]:
        """Signed cone radius and native longitude of plane points."""
        dy = self._y0 - y
        r = math.copysign(1.0, self.theta_a) * torch.hypot(x, dy)
        r_safe = torch.where(r.abs() < DOUBLE_TOLERANCE, torch.ones_like(r), r)
        return r, atan2_safe(x / r_safe, dy / r_safe) / self.c

    def conic_xy(self, r: Tensor, phi: Tensor) -> Tuple[Tensor, Tensor]:
        angle = self.c * phi
        return r * torch.sin(angle), -r * torch.cos(angle) + self._y0

    def _project(self, x, y):
        r, phi = self.conic_phi(x, y)
        theta, status = self._theta(r)
        return phi, theta, status

    def _project_inverse(self, phi, theta):
        return self.conic_xy(self._radius(theta), phi)

    def _native_domain(self, phi, theta):
        return (phi.abs() <= math.pi + DOUBLE_TOLERANCE) & (
            theta.abs() <= HALF_PI + DOUBLE_TOLERANCE
        )

    def _theta(self, r: Tensor) -> Tuple[Tensor, Tensor]:
        raise NotImplementedError

    def _radius(self, theta: Tensor) -> Tensor:
        raise NotImplementedError


class COP(ConicProjection):
    """Conic perspective projection."""

    code = "COP"
    name = "conic perspective"

    def _cone(self, theta_a, eta, theta1, theta2):
        self._require_oblique(theta_a)
        cos_eta = math.cos(eta)
        if almost_equal(cos_eta, 0.0):
            raise BadProjectionParameterError(f"{self.code}: eta = 90", self.code)
        cot_a = 1.0 / math.tan(theta_a)
        return {"c": math.sin(theta_a), "_y0": cos_eta * cot_a, "_cos_eta": cos_eta, "_cot_a": cot_a}

    def _radius(self, theta):
        return self._cos_eta * (self._cot_a - torch.tan(theta - self.theta_a))

    def _theta(self, r):
        return self.theta_a + torch.atan(self._cot_a - r / self._cos_eta), ok_status(r)

    def _native_domain(self, phi, theta):
        return super()._native_domain(phi, theta) & (
            torch.cos(theta - self.theta_a) > DOUBLE_TOLERANCE
        )


class COE(ConicProjection):
    """Conic equal area projection."""

    code = "COE"
    name = "conic equal area"

    def _cone(self, theta_a, eta, theta1, theta2):
        gamma = math.sin(theta1) + math.sin(theta2)
        if almost_equal(gamma, 0.0):
            raise BadProjectionParameterError(
                f"{self.code}: sin(theta1) + sin(theta2) = 0", self.code
            )
        c = 0.5 * gamma
        s1s2 = math.sin(theta1) * math.sin(theta2)
        y0 = math.sqrt(max(0.0, 1.0 + s1s2 - gamma * math.sin(theta_a))) / c
        return {"c": c, "_y0": y0, "_gamma": gamma, "_s1s2": s1s2}

    def _radius(self, theta):
        arg = 1.0 + self._s1s2 - self._gamma * torch.sin(theta)
        return torch.sqrt(arg.clamp(min=0.0)) / self.c

    def _theta(self, r):
        gamma = self._gamma
        s = 1.0 / gamma + self._s1s2 / gamma - gamma * (0.5 * r) ** 2
        status = fail(ok_status(r), s.abs() > 1.0 + DOUBLE_TOLERANCE, BEYOND)
        return safe_asin(s), status


class COD(ConicProjection):
    """Conic equidistant projection."""

    code = "COD"
    name = "conic equidistant"

    def _cone(self, theta_a, eta, theta1, theta2):
        self._require_oblique(theta_a)
        cot_a = 1.0 / math.tan(theta_a)
        if almost_equal(eta, 0.0):
            return {"c": math.sin(theta_a), "_y0": cot_a}
        return {
            "c": math.sin(theta_a) * math.sin(eta) / eta,
            "_y0": eta * cot_a / math.tan(eta),
        }

    def _radius(self, theta):
        return self.theta_a - theta + self._y0

    def _theta(self, r):
        return self.theta_a + self._y0 - r, ok_status(r)


class COO(ConicProjection):
    """Conic orthomorphic (conformal) projection."""

    code = "COO"
    name = "conic orthomorphic"

    def _cone(self, theta_a, eta, theta1, theta2):
        self._require_oblique(theta_a)
        tan1 = math.tan(0.5 * (HALF_PI - theta1))
        tan2 = math.tan(0.5 * (HALF_PI - theta2))
        cos1, cos2 = math.cos(theta1), math.cos(theta2)
        if min(tan1, tan2, cos1, cos2) < DOUBLE_TOLERANCE:
            raise BadProjectionParameterError(
                f"{self.code}: standard parallel at a pole", self.code
            )
        if almost_equal(eta, 0.0):
            c = math.sin(theta1)
        else:
            c = math.log(cos2 / cos1) / math.log(tan2 / tan1)
        if almost_equal(c, 0.0):
            raise BadProjectionParameterError(f"{self.code}: cone constant is zero", self.code)
        psi = cos1 / (c * tan1**c)
        y0 = psi * math.tan(0.5 * (HALF_PI - theta_a)) ** c
        return {"c": c, "_y0": y0, "_psi": psi}

    def _radius(self, theta):
        return self._psi * torch.tan(0.5 * (HALF_PI - theta)) ** self.c

    def _theta(self, r):
        return HALF_PI - 2.0 * torch.atan((r / self._psi) ** (1.0 / self.c)), ok_status(r)

    def _native_domain(self, phi, theta):
        # the pole opposite the apex is at infinite radius
        if self.c > 0.0:
            far_pole = theta > -HALF_PI + DOUBLE_TOLERANCE
        else:
            far_pole = theta < HALF_PI - DOUBLE_TOLERANCE
        return super()._native_domain(phi, theta) & far_pole
