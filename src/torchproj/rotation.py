"""
Spherical rotation between native and celestial coordinates.

A projection works in its own native frame ``(phi, theta)``. The rotation
maps that frame onto the sky ``(alpha, delta)`` given the fiducial point
``(alpha0, delta0)``, the native reference point ``(phi0, theta0)`` of the
projection family and the native longitude of the celestial pole ``phip``.

All angles are in radians. Scalars describing the rotation are Python floats;
coordinates are float64 tensors.
"""

import math
from typing import Optional, Tuple

import torch
from torch import Tensor

from .exceptions import BadProjectionParameterError, ProjectionInvariantError
from .numeric import (
    DOUBLE_TOLERANCE,
    HALF_PI,
    Number,
    almost_equal,
    broadcast,
    is_in_interval,
    normalize_longitude,
    normalize_phi,
    safe_asin,
)


def _latitude(x: Tensor, y: Tensor, z: Tensor) -> Tensor:
    """Latitude of the unit vector ``(x, y, z)``, using ``acos(hypot(x, y))`` near the poles."""
    near_pole = z.abs() > 0.99
    polar = torch.copysign(torch.acos(torch.hypot(x, y).clamp(max=1.0)), z)
    return torch.where(near_pole, polar, safe_asin(z))


class SphericalRotation:
    """
    Rotation from the native frame of a projection to the celestial frame.

    The celestial position of the native pole ``(alphap, deltap)`` is derived
    from the other parameters and recomputed eagerly by ``set_pole``, so it is
    never stale.

    Args:
        alpha0, delta0: Fiducial point (celestial coordinates of the native
            reference point).
        phi0, theta0: Native reference point of the projection family.
        phip: Native longitude of the celestial pole (LONPOLE). ``None``
            selects the default for the fiducial point.
        thetap: Preferred native pole latitude (LATPOLE) used to pick between
            the two solutions for ``deltap``.
    """

    def __init__(
        self,
        alpha0: float,
        delta0: float,
        phi0: float,
        theta0: float,
        phip: Optional[float] = None,
        thetap: float = HALF_PI,
    ):
        self.alpha0 = float(alpha0)
        self.delta0 = float(delta0)
        self.phi0 = float(phi0)
        self.theta0 = float(theta0)
        self._requested_phip = None
        self._phip = self.default_phip()
        self._thetap = HALF_PI
        self._alphap = 0.0
        self._deltap = HALF_PI
        self.set_pole(phip, thetap)

    def default_phip(self) -> float:
        """0 when the fiducial latitude is at least the native reference latitude, pi otherwise."""
        if self.delta0 >= self.theta0 - DOUBLE_TOLERANCE:
            return 0.0
        return math.pi

    @property
    def phip(self) -> float:
        return self._phip

    @property
    def thetap(self) -> float:
        return self._thetap

    @property
    def requested_phip(self) -> Optional[float]:
        """The explicitly set ``phip``, or None when the default is in use."""
        return self._requested_phip

    @property
    def native_pole(self) -> Tuple[float, float]:
        """Celestial coordinates ``(alphap, deltap)`` of the native pole."""
        return self._alphap, self._deltap

    def set_pole(self, phip: Optional[float] = None, thetap: Optional[float] = None) -> None:
        """
        Update ``phip`` and/or ``thetap`` and recompute the native pole.

        Nothing is modified if validation or the native pole computation fails.
        """
        requested = self._requested_phip if phip is None else float(phip)
        new_phip = self.default_phip() if requested is None else requested
        new_thetap = self._thetap if thetap is None else float(thetap)
        if not is_in_interval(new_thetap, -HALF_PI, HALF_PI):
            raise BadProjectionParameterError(f"thetap = {math.degrees(new_thetap)} deg")

        alphap, deltap = self.compute_native_pole_celestial_position(new_phip, new_thetap)
        (
            self._requested_phip,
            self._phip,
            self._thetap,
            self._alphap,
            self._deltap,
        ) = (requested, new_phip, new_thetap, alphap, deltap)

    def compute_native_pole_celestial_position(
        self, phip: float, thetap: Optional[float] = None
    ) -> Tuple[float, float]:
        """
        Celestial position ``(alphap, deltap)`` of the native pole for a given ``phip``.

        In general two values of ``deltap`` solve the rotation; roots outside
        [-pi/2, pi/2] are discarded and, when both remain, the one closest to
        ``thetap`` wins.

        Raises:
            ProjectionInvariantError: If no ``deltap`` lies in [-pi/2, pi/2].
        """
        if thetap is None:
            thetap = self._thetap
        alpha0, delta0, phi0, theta0 = self.alpha0, self.delta0, self.phi0, self.theta0

        if almost_equal(phi0, 0.0) and almost_equal(theta0, HALF_PI):
            return alpha0, delta0

        dphi = phip - phi0
        if (
            almost_equal(theta0, 0.0)
            and almost_equal(delta0, 0.0)
            and almost_equal(abs(dphi), HALF_PI)
        ):
            deltap = thetap
        else:
            deltap = self._solve_deltap(dphi, thetap)

        if almost_equal(abs(delta0), HALF_PI):
            alphap = alpha0
        elif almost_equal(deltap, HALF_PI):
            alphap = alpha0 + dphi - math.pi
        elif almost_equal(deltap, -HALF_PI):
            alphap = alpha0 - dphi
        else:
            das = math.sin(dphi) * math.cos(theta0) / math.cos(delta0)
            dac = (math.sin(theta0) - math.sin(deltap) * math.sin(delta0)) / (
                math.cos(deltap) * math.cos(delta0)
            )
            alphap = alpha0 - math.atan2(das, dac)
        return alphap, deltap

    def _solve_deltap(self, dphi: float, thetap: float) -> float:
        theta0, delta0 = self.theta0, self.delta0
        arg = math.atan2(math.sin(theta0), math.cos(theta0) * math.cos(dphi))
        denom = math.sqrt(max(0.0, 1.0 - (math.cos(theta0) * math.sin(dphi)) ** 2))
        if denom < DOUBLE_TOLERANCE:
            raise ProjectionInvariantError(
                f"No native pole latitude for delta0 = {math.degrees(delta0)} deg"
            )
        ratio = math.sin(delta0) / denom
        if abs(ratio) > 1.0 + DOUBLE_TOLERANCE:
            raise ProjectionInvariantError(
                f"No native pole latitude for delta0 = {math.degrees(delta0)} deg "
                f"and phip - phi0 = {math.degrees(dphi)} deg"
            )
        acos = math.acos(max(-1.0, min(1.0, ratio)))

        candidates = [d for d in (arg + acos, arg - acos) if is_in_interval(d, -HALF_PI, HALF_PI)]
        if not candidates:
            raise ProjectionInvariantError(
                f"Both native pole latitudes out of range: {math.degrees(arg + acos)}, "
                f"{math.degrees(arg - acos)} deg"
            )
        deltap = min(candidates, key=lambda d: abs(d - thetap))
        return max(-HALF_PI, min(HALF_PI, deltap))

    def native_to_celestial(self, phi: Number, theta: Number) -> Tuple[Tensor, Tensor]:
        """Rotate native ``(phi, theta)`` to celestial ``(alpha, delta)``, alpha in [0, 2pi)."""
        phi, theta = broadcast(phi, theta)
        alphap, deltap, phip = self._alphap, self._deltap, self._phip

        if almost_equal(deltap, HALF_PI):
            alpha = alphap + phi - phip - math.pi
            delta = theta
        elif almost_equal(deltap, -HALF_PI):
            alpha = alphap - phi + phip
            delta = -theta
        else:
            dphi = phi - phip
            sin_t, cos_t = torch.sin(theta), torch.cos(theta)
            sin_dp, cos_dp = math.sin(deltap), math.cos(deltap)
            y = -cos_t * torch.sin(dphi)
            x = sin_t * cos_dp - cos_t * sin_dp * torch.cos(dphi)
            alpha = alphap + torch.atan2(y, x)
            delta = _latitude(x, y, sin_t * sin_dp + cos_t * cos_dp * torch.cos(dphi))
        return normalize_longitude(alpha), delta

    def celestial_to_native(self, alpha: Number, delta: Number) -> Tuple[Tensor, Tensor]:
        """Rotate celestial ``(alpha, delta)`` to native ``(phi, theta)``, phi in (-pi, pi]."""
        alpha, delta = broadcast(alpha, delta)
        alphap, deltap, phip = self._alphap, self._deltap, self._phip

        if almost_equal(deltap, HALF_PI):
            phi = phip + alpha - alphap + math.pi
            theta = delta
        elif almost_equal(deltap, -HALF_PI):
            phi = phip - alpha + alphap
            theta = -delta
        else:
            dalpha = alpha - alphap
            sin_d, cos_d = torch.sin(delta), torch.cos(delta)
            sin_dp, cos_dp = math.sin(deltap), math.cos(deltap)
            y = -cos_d * torch.sin(dalpha)
            x = sin_d * cos_dp - cos_d * sin_dp * torch.cos(dalpha)
            phi = phip + torch.atan2(y, x)
            theta = _latitude(x, y, sin_d * sin_dp + cos_d * cos_dp * torch.cos(dalpha))
        return normalize_phi(phi), theta

    def __repr__(self) -> str:
        return (
            f"SphericalRotation(alphap={math.degrees(self._alphap):.9g}, "
            f"deltap={math.degrees(self._deltap):.9g}, phip={math.degrees(self._phip):.9g})"
        )
