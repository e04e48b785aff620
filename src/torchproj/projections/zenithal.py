"""
Zenithal (azimuthal) projections.

The native reference point is the native pole ``(phi0, theta0) = (0, 90 deg)``.
Plane coordinates are polar: the radius ``R`` depends on ``theta`` only and the
azimuth is ``phi``. Each projection provides the ``R(theta)`` pair of
functions; the slanted perspectives (AZP, SZP, SIN) solve their own geometry.
"""

import math
from typing import Dict, Tuple

import torch
from torch import Tensor

from ..exceptions import BadProjectionParameterError
from ..numeric import (
    DOUBLE_TOLERANCE,
    HALF_PI,
    TWO_PI,
    almost_equal,
    atan2_safe,
    eval_polynomial,
    is_in_interval,
    polynomial_degree,
    polynomial_turning_point,
    safe_asin,
    solve_bisection,
    solve_polynomial,
    solve_quadratic_nearest_pole,
)
from .base import BEYOND, UNSOLVED, Projection, ProjectionParameter, fail, ok_status

INF = math.inf

# Below this squared radius the quadratic of the slant projections is ill-conditioned
SMALL_RADIUS2 = 1.0e-10

ZPN_MAX_COEFFICIENTS = 30


class ZenithalProjection(Projection):
    """Zenithal family: polar plane coordinates around the native pole."""

    family = "zenithal"
    phi0 = 0.0
    theta0 = HALF_PI

    @staticmethod
    def radius(x: Tensor, y: Tensor) -> Tensor:
        return torch.hypot(x, y)

    @staticmethod
    def angle(x: Tensor, y: Tensor) -> Tensor:
        """Native longitude of a plane point, 0 at the origin."""
        return atan2_safe(x, -y, 0.0)

    @staticmethod
    def plane_coords(r: Tensor, phi: Tensor) -> Tuple[Tensor, Tensor]:
        return r * torch.sin(phi), -r * torch.cos(phi)

    def _project(self, x, y):
        theta, status = self._theta(self.radius(x, y))
        return self.angle(x, y), theta, status

    def _project_inverse(self, phi, theta):
        return self.plane_coords(self._radius(theta), phi)

    def _native_domain(self, phi, theta):
        # angular distance from the fiducial point of at most 90 deg
        return theta >= -DOUBLE_TOLERANCE

    def _theta(self, r: Tensor) -> Tuple[Tensor, Tensor]:
        raise NotImplementedError

    def _radius(self, theta: Tensor) -> Tensor:
        raise NotImplementedError


class TAN(ZenithalProjection):
    """Gnomonic projection."""

    code = "TAN"
    name = "gnomonic"

    def _theta(self, r):
        return torch.atan2(torch.ones_like(r), r), ok_status(r)

    def _radius(self, theta):
        return torch.cos(theta) / torch.sin(theta)

    def _native_domain(self, phi, theta):
        return torch.sin(theta) > DOUBLE_TOLERANCE


class STG(ZenithalProjection):
    """Stereographic projection."""

    code = "STG"
    name = "stereographic"

    def _theta(self, r):
        return HALF_PI - 2.0 * torch.atan(0.5 * r), ok_status(r)

    def _radius(self, theta):
        return 2.0 * torch.cos(theta) / (1.0 + torch.sin(theta))

    def _native_domain(self, phi, theta):
        return theta > -HALF_PI + DOUBLE_TOLERANCE


class ARC(ZenithalProjection):
    """Zenithal equidistant projection."""

    code = "ARC"
    name = "zenithal equidistant"

    def _theta(self, r):
        status = fail(ok_status(r), r > math.pi + DOUBLE_TOLERANCE, BEYOND)
        return (HALF_PI - r).clamp(min=-HALF_PI), status

    def _radius(self, theta):
        return HALF_PI - theta

    def _native_domain(self, phi, theta):
        return torch.ones_like(theta, dtype=torch.bool)


class ZEA(ZenithalProjection):
    """Zenithal equal-area projection."""

    code = "ZEA"
    name = "zenithal equal-area"

    def _theta(self, r):
        status = fail(ok_status(r), r > 2.0 + DOUBLE_TOLERANCE, BEYOND)
        return HALF_PI - 2.0 * safe_asin(0.5 * r), status

    def _radius(self, theta):
        return 2.0 * torch.sin(0.5 * (HALF_PI - theta))

    def _native_domain(self, phi, theta):
        return torch.ones_like(theta, dtype=torch.bool)


def _slant_to_native(x: Tensor, y: Tensor, x1, y1) -> Tuple[Tensor, Tensor, Tensor]:
    """
    Native coordinates of a plane point for the slanted perspectives.

    ``(x1, y1)`` are the plane offsets of the perspective point scaled by its
    height (``(xi, eta)`` for SIN). The intersection of the projection line
    with the unit sphere is a quadratic in ``sin(theta)``; the root nearest
    the pole is kept.
    """
    r2 = x * x + y * y
    xy = x * x1 + y * y1
    t = x1 * x1 + y1 * y1

    sin_theta, ok = solve_quadratic_nearest_pole(
        t + 1.0, 2.0 * (xy - t), r2 - 2.0 * xy + t - 1.0, 1.0, -1.0, 1.0
    )
    theta = torch.asin(sin_theta)
    z = 1.0 - sin_theta

    small = r2 < SMALL_RADIUS2
    theta_small = HALF_PI - torch.sqrt((r2 / (1.0 + xy)).clamp(min=0.0))
    theta = torch.where(small, theta_small, theta)
    z = torch.where(small, 0.5 * r2, z)
    ok = ok | small

    phi = atan2_safe(x - x1 * z, -(y - y1 * z))
    return phi, theta, fail(ok_status(theta), ~ok, UNSOLVED)


class SIN(ZenithalProjection):
    """
    Slant orthographic projection.

    ``xi`` and ``eta`` tilt the projection direction; both zero gives the
    plain orthographic projection of the hemisphere facing the observer.
    """

    code = "SIN"
    name = "slant orthographic"
    parameters = (
        ProjectionParameter("xi", "PV2_1", (-INF, INF), 0.0),
        ProjectionParameter("eta", "PV2_2", (-INF, INF), 0.0),
    )

    def _configure(self, values):
        return {"xi": values["xi"], "eta": values["eta"]}

    def _project(self, x, y):
        return _slant_to_native(x, y, self.xi, self.eta)

    def _project_inverse(self, phi, theta):
        cos_theta = torch.cos(theta)
        z = 1.0 - torch.sin(theta)
        x = cos_theta * torch.sin(phi) + self.xi * z
        y = -cos_theta * torch.cos(phi) + self.eta * z
        return x, y

    def _native_domain(self, phi, theta):
        limit = -torch.atan(self.xi * torch.sin(phi) - self.eta * torch.cos(phi))
        return theta >= limit - DOUBLE_TOLERANCE


class NCP(SIN):
    """North celestial pole projection: SIN with ``eta = cot(delta0)``."""

    code = "NCP"
    name = "north celestial pole"
    parameters = ()

    def _configure(self, values):
        if almost_equal(self.crval2, 0.0):
            raise BadProjectionParameterError("NCP: crval2 = 0", self.code)
        return {"xi": 0.0, "eta": 1.0 / math.tan(math.radians(self.crval2))}


class AZP(ZenithalProjection):
    """
    Zenithal perspective projection, optionally slanted.

    The perspective point lies at ``mu`` sphere radii from the centre,
    opposite the reference point; ``gamma`` tilts the projection plane.
    ``mu = 0`` is gnomonic and ``mu = 1`` stereographic.
    """

    code = "AZP"
    name = "zenithal perspective"
    parameters = (
        ProjectionParameter("mu", "PV2_1", (-INF, INF), 0.0),
        ProjectionParameter("gamma", "PV2_2", (-INF, INF), 0.0),
    )

    def _configure(self, values):
        mu = values["mu"]
        gamma = math.radians(values["gamma"])
        if almost_equal(mu, -1.0):
            raise BadProjectionParameterError(f"AZP: mu = {mu}", self.code)
        if almost_equal(math.cos(gamma), 0.0):
            raise BadProjectionParameterError(f"AZP: gamma = {values['gamma']}", self.code)
        return {
            "mu": mu,
            "gamma": gamma,
            "_cos_gamma": math.cos(gamma),
            "_sin_gamma": math.sin(gamma),
            "_tan_gamma": math.tan(gamma),
            # lowest visible latitude when the perspective point is outside the sphere
            "_theta_limit": math.asin(-1.0 / mu) if abs(mu) > 1.0 else -HALF_PI,
        }

    def _project(self, x, y):
        mu = self.mu
        yc = y * self._cos_gamma
        r = torch.hypot(x, yc)
        phi = atan2_safe(x, -yc)

        c = (mu + 1.0) + y * self._sin_gamma
        degenerate = c.abs() < DOUBLE_TOLERANCE
        status = fail(ok_status(r), degenerate, BEYOND)
        rho = r / torch.where(degenerate, torch.ones_like(c), c)

        s = rho * mu / torch.sqrt(rho * rho + 1.0)
        status = fail(status, s.abs() > 1.0 + DOUBLE_TOLERANCE, BEYOND)
        psi = torch.atan2(torch.ones_like(rho), rho)
        omega = torch.asin(s.clamp(-1.0, 1.0))

        theta1 = psi - omega
        theta2 = psi + omega + math.pi
        theta2 = torch.where(theta2 > HALF_PI, theta2 - TWO_PI, theta2)
        valid1 = is_in_interval(theta1, -HALF_PI, HALF_PI)
        valid2 = is_in_interval(theta2, -HALF_PI, HALF_PI)

        if abs(mu) <= 1.0:
            theta = torch.where(valid1, theta1, theta2)
        else:
            theta = torch.where(
                valid1 & valid2, torch.maximum(theta1, theta2), torch.where(valid1, theta1, theta2)
            )
        status = fail(status, ~(valid1 | valid2), BEYOND)
        return phi, theta.clamp(-HALF_PI, HALF_PI), status

    def _denominator(self, phi, theta):
        return self.mu + torch.sin(theta) + torch.cos(theta) * torch.cos(phi) * self._tan_gamma

    def _project_inverse(self, phi, theta):
        r = (self.mu + 1.0) * torch.cos(theta) / self._denominator(phi, theta)
        return r * torch.sin(phi), -r * torch.cos(phi) / self._cos_gamma

    def _native_domain(self, phi, theta):
        d = self._denominator(phi, theta)
        return (
            (d.abs() > DOUBLE_TOLERANCE)
            & ((self.mu + 1.0) * d > 0.0)
            & (theta >= self._theta_limit - DOUBLE_TOLERANCE)
        )


class SZP(ZenithalProjection):
    """
    Slant zenithal perspective projection.

    The perspective point sits at distance ``mu`` in the native direction
    ``(phi_c, theta_c)``; ``theta_c = 90`` reduces to AZP with ``gamma = 0``.
    """

    code = "SZP"
    name = "slant zenithal perspective"
    parameters = (
        ProjectionParameter("mu", "PV2_1", (-INF, INF), 0.0),
        ProjectionParameter("phi_c", "PV2_2", (-360.0, 360.0), 0.0),
        ProjectionParameter("theta_c", "PV2_3", (-90.0, 90.0), 90.0),
    )

    def _configure(self, values):
        mu = values["mu"]
        phi_c = math.radians(values["phi_c"])
        theta_c = math.radians(values["theta_c"])
        zp = mu * math.sin(theta_c) + 1.0
        if abs(zp) < DOUBLE_TOLERANCE:
            raise BadProjectionParameterError(
                f"SZP: mu = {mu}, theta_c = {values['theta_c']}", self.code
            )
        return {
            "mu": mu,
            "phi_c": phi_c,
            "theta_c": theta_c,
            "_xp": -mu * math.cos(theta_c) * math.sin(phi_c),
            "_yp": mu * math.cos(theta_c) * math.cos(phi_c),
            "_zp": zp,
        }

    def _project(self, x, y):
        x1 = (x - self._xp) / self._zp
        y1 = (y - self._yp) / self._zp
        return _slant_to_native(x, y, x1, y1)

    def _project_inverse(self, phi, theta):
        cos_theta = torch.cos(theta)
        s = 1.0 - torch.sin(theta)
        t = self._zp - s
        x = (self._zp * cos_theta * torch.sin(phi) - self._xp * s) / t
        y = -(self._zp * cos_theta * torch.cos(phi) + self._yp * s) / t
        return x, y

    def _native_domain(self, phi, theta):
        cos_theta, sin_theta = torch.cos(theta), torch.sin(theta)
        side = math.copysign(1.0, self._zp)
        t = self._zp - (1.0 - sin_theta)
        # the projection line runs from the perspective point towards the plane
        in_front = t * side > DOUBLE_TOLERANCE
        # pq > 1 on the hemisphere facing the perspective point; that side is
        # the one nearest the pole only when the point lies above the plane
        pq = (
            self._xp * cos_theta * torch.sin(phi)
            - self._yp * cos_theta * torch.cos(phi)
            + (1.0 - self._zp) * sin_theta
        )
        return in_front & ((pq - 1.0) * side <= DOUBLE_TOLERANCE)


class AIR(ZenithalProjection):
    """
    Airy projection, minimising the error for the region within ``theta_b``.

    The forward direction has no closed form and is solved by bisection.
    """

    code = "AIR"
    name = "Airy"
    parameters = (ProjectionParameter("theta_b", "PV2_1", (-90.0, 90.0), 90.0),)

    def _configure(self, values):
        theta_b = values["theta_b"]
        if almost_equal(theta_b, -90.0):
            raise BadProjectionParameterError(f"AIR: theta_b = {theta_b}", self.code)
        xi_b = 0.5 * (HALF_PI - math.radians(theta_b))
        if almost_equal(xi_b, 0.0):
            # limit of log(cos x) / tan(x)**2 for x -> 0
            c = -0.5
        else:
            cos_xi_b = math.cos(xi_b)
            if cos_xi_b < DOUBLE_TOLERANCE:
                raise BadProjectionParameterError(f"AIR: theta_b = {theta_b}", self.code)
            c = math.log(cos_xi_b) / math.tan(xi_b) ** 2
        return {"theta_b": math.radians(theta_b), "_c": c}

    def _radius(self, theta):
        xi = 0.5 * (HALF_PI - theta)
        at_pole = xi.abs() < DOUBLE_TOLERANCE
        tan_xi = torch.tan(xi)
        log_cos_xi = torch.log1p(-2.0 * torch.sin(0.5 * xi) ** 2)
        r = -2.0 * (log_cos_xi / torch.where(at_pole, torch.ones_like(tan_xi), tan_xi) + self._c * tan_xi)
        return torch.where(at_pole, torch.zeros_like(r), r)

    def _theta(self, r):
        lower = torch.full_like(r, -HALF_PI + DOUBLE_TOLERANCE)
        upper = torch.full_like(r, HALF_PI)
        theta, converged = solve_bisection(lambda t: self._radius(t) - r, lower, upper)
        return theta, fail(ok_status(r), ~converged, UNSOLVED)

    def _native_domain(self, phi, theta):
        return theta >= -HALF_PI + DOUBLE_TOLERANCE


def _coefficient_params(coefficients) -> Dict[str, float]:
    coefficients = [float(c) for c in coefficients]
    if len(coefficients) > ZPN_MAX_COEFFICIENTS:
        raise BadProjectionParameterError(
            f"ZPN: {len(coefficients)} coefficients, at most {ZPN_MAX_COEFFICIENTS}", "ZPN"
        )
    coefficients += [0.0] * (ZPN_MAX_COEFFICIENTS - len(coefficients))
    return {f"p{m}": c for m, c in enumerate(coefficients)}


class ZPN(ZenithalProjection):
    """
    Zenithal polynomial projection: ``R = sum(p_m * zd**m)`` with ``zd = 90 deg - theta``.

    Coefficients are given either as ``coefficients=(p0, p1, ...)`` or one by
    one as ``p0`` ... ``p29``. Only the part of the polynomial up to its first
    turning point is invertible and forms the projection domain.
    """

    code = "ZPN"
    name = "zenithal polynomial"
    parameters = tuple(
        ProjectionParameter(f"p{m}", f"PV2_{m}", (-INF, INF), 1.0 if m == 1 else 0.0)
        for m in range(ZPN_MAX_COEFFICIENTS)
    )

    def __init__(self, crval1=0.0, crval2=0.0, coefficients=None, **params):
        if coefficients is not None:
            params.update(_coefficient_params(coefficients))
        super().__init__(crval1, crval2, **params)

    def update_parameters(self, coefficients=None, **params):
        if coefficients is not None:
            params.update(_coefficient_params(coefficients))
        super().update_parameters(**params)

    def _configure(self, values):
        coefficients = tuple(values[f"p{m}"] for m in range(ZPN_MAX_COEFFICIENTS))
        degree = polynomial_degree(coefficients)
        if degree < 0:
            raise BadProjectionParameterError("ZPN: all coefficients are zero", self.code)
        if degree < 1:
            raise BadProjectionParameterError("ZPN: polynomial of degree 0", self.code)
        if coefficients[1] <= 0.0:
            raise BadProjectionParameterError(
                f"ZPN: p1 = {coefficients[1]} must be positive", self.code
            )
        coefficients = coefficients[: degree + 1]
        zd_max, r_max = polynomial_turning_point(coefficients)
        return {"coefficients": coefficients, "_zd_max": zd_max, "_r_max": r_max}

    @property
    def description(self) -> str:
        return "coefficients=(" + ", ".join(f"{c:g}" for c in self.coefficients) + ")"

    def _theta(self, r):
        zd, ok = solve_polynomial(self.coefficients, r, 0.0, self._zd_max)
        return HALF_PI - zd, fail(ok_status(r), ~ok, UNSOLVED)

    def _radius(self, theta):
        return eval_polynomial(self.coefficients, HALF_PI - theta)

    def _native_domain(self, phi, theta):
        return HALF_PI - theta <= self._zd_max + DOUBLE_TOLERANCE
