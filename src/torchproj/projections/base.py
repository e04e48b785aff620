"""
Shared machinery of all spherical projections.

A projection maps plane coordinates ``(x, y)`` (degrees) to native spherical
coordinates ``(phi, theta)`` (radians) and back. Combined with a
``SphericalRotation`` it converts between plane and celestial coordinates.

Subclasses implement three hooks on radian tensors:

* ``_project(x, y) -> (phi, theta, status)``
* ``_project_inverse(phi, theta) -> (x, y)``
* ``_native_domain(phi, theta) -> bool tensor``

``status`` is an int8 tensor of ``OK``/``BEYOND``/``UNSOLVED`` codes. The
public methods turn failing elements into exceptions (``strict=True``) or NaN.
"""

import math
from collections import namedtuple
from typing import Dict, Tuple

import torch
from torch import Tensor

from ..exceptions import (
    BadProjectionParameterError,
    MathematicalSolutionError,
    PixelBeyondProjectionError,
)
from ..logging import log_projection_setup
from ..numeric import (
    D2R,
    HALF_PI,
    R2D,
    Number,
    broadcast,
    is_in_interval,
    normalize_longitude,
    normalize_phi,
)
from ..rotation import SphericalRotation

# Per-element status codes
OK = 0
BEYOND = 1
UNSOLVED = 2

ProjectionParameter = namedtuple(
    "ProjectionParameter", ["name", "pv_name", "valid_interval", "default"]
)
ProjectionParameter.__doc__ = """Named projection parameter.

name: keyword accepted by the constructor.
pv_name: FITS keyword carrying the value (e.g. ``PV2_1``).
valid_interval: inclusive ``(lower, upper)`` bounds.
default: value used when the parameter is not given.
"""


def ok_status(like: Tensor) -> Tensor:
    return torch.zeros(like.shape, dtype=torch.int8, device=like.device)


def fail(status: Tensor, mask: Tensor, code: int) -> Tensor:
    """Set ``code`` where ``mask`` holds and no failure was recorded yet."""
    return torch.where((status == OK) & mask, torch.full_like(status, code), status)


class Projection:
    """
    Base class of every projection.

    Args:
        crval1, crval2: Fiducial point (celestial longitude and latitude) in degrees.
        **params: Projection parameters by name, see ``parameters``.

    Raises:
        BadProjectionParameterError: If a parameter is unknown or outside its domain.
    """

    code = ""
    name = ""
    family = ""
    parameters: Tuple[ProjectionParameter, ...] = ()
    phi0 = 0.0
    theta0 = 0.0

    def __init__(self, crval1: float = 0.0, crval2: float = 0.0, **params):
        crval1, crval2 = float(crval1), float(crval2)
        if not is_in_interval(crval2, -90.0, 90.0):
            raise BadProjectionParameterError(f"{self.code}: crval2 = {crval2}", self.code)
        self.crval1 = crval1
        self.crval2 = crval2

        values = self._resolve_parameters(params)
        state = self._configure(values)
        self.__dict__.update(state)
        self._params = values
        self.rotation = SphericalRotation(
            math.radians(crval1), math.radians(crval2), self.phi0, self.theta0
        )
        log_projection_setup(self.code, self.description, self.native_pole)

    def _configure(self, values: Dict[str, float]) -> Dict[str, float]:
        """Validate parameter values and return the derived attributes to set."""
        return {}

    def _resolve_parameters(self, params: Dict[str, float]) -> Dict[str, float]:
        known = {p.name: p for p in self.parameters}
        unknown = set(params) - set(known)
        if unknown:
            raise BadProjectionParameterError(
                f"{self.code}: unknown parameter(s) {sorted(unknown)}", self.code
            )
        values = {}
        for p in self.parameters:
            value = params.get(p.name, p.default)
            if value is None:
                raise BadProjectionParameterError(
                    f"{self.code}: missing parameter {p.name} ({p.pv_name})", self.code
                )
            value = float(value)
            lower, upper = p.valid_interval
            if math.isnan(value) or not is_in_interval(value, lower, upper):
                raise BadProjectionParameterError(
                    f"{self.code}: {p.name} = {value} outside [{lower}, {upper}]", self.code
                )
            values[p.name] = value
        return values

    def update_parameters(self, **params) -> None:
        """
        Change projection parameters after construction.

        The new values are validated and the derived state, including the
        native pole, is rebuilt before anything is assigned.
        """
        values = self._resolve_parameters({**self._params, **params})
        state = self._configure(values)
        theta0 = state.get("theta0", self.theta0)
        rotation = SphericalRotation(
            self.rotation.alpha0,
            self.rotation.delta0,
            state.get("phi0", self.phi0),
            theta0,
            phip=self.rotation.requested_phip,
            thetap=self.rotation.thetap,
        )
        self.__dict__.update(state)
        self._params, self.rotation = values, rotation

    def set_phip(self, phip: float) -> None:
        """Set the native longitude of the celestial pole (degrees)."""
        self.rotation.set_pole(phip=math.radians(phip))

    def set_thetap(self, thetap: float) -> None:
        """Set the preferred native latitude of the celestial pole (degrees)."""
        self.rotation.set_pole(thetap=math.radians(thetap))

    @property
    def parameter_values(self) -> Dict[str, float]:
        return dict(self._params)

    @property
    def description(self) -> str:
        if not self._params:
            return self.name
        return " ".join(f"{k}={v:g}" for k, v in self._params.items())

    @property
    def native_reference(self) -> Tuple[float, float]:
        """Native reference point ``(phi0, theta0)`` in degrees."""
        return math.degrees(self.phi0), math.degrees(self.theta0)

    @property
    def native_pole(self) -> Tuple[float, float]:
        """Celestial position ``(alphap, deltap)`` of the native pole in degrees."""
        alphap, deltap = self.rotation.native_pole
        return math.degrees(alphap) % 360.0, math.degrees(deltap)

    def project(self, x: Number, y: Number, strict: bool = True) -> Tuple[Tensor, Tensor]:
        """
        Plane coordinates (degrees) to native spherical coordinates (radians).

        Raises:
            PixelBeyondProjectionError: If ``strict`` and a point has no image.
            MathematicalSolutionError: If ``strict`` and a solver failed.
        """
        x, y = broadcast(x, y)
        phi, theta, status = self._project(x * D2R, y * D2R)
        finite = torch.isfinite(phi) & torch.isfinite(theta)
        status = fail(status, ~finite, BEYOND)
        status = fail(status, ~self._in_native_sphere(phi, theta), BEYOND)
        status = fail(status, ~self._native_domain(phi, theta), BEYOND)
        return self._finish(phi, theta, status, x, y, True, strict)

    def project_inverse(
        self, phi: Number, theta: Number, strict: bool = True
    ) -> Tuple[Tensor, Tensor]:
        """
        Native spherical coordinates (radians) to plane coordinates (degrees).

        ``phi`` is normalised into (-pi, pi] first.
        """
        phi, theta = broadcast(phi, theta)
        phi = normalize_phi(phi)
        x, y, *solved = self._project_inverse(phi, theta)
        status = solved[0] if solved else ok_status(x)
        status = fail(status, ~self._in_native_sphere(phi, theta), BEYOND)
        status = fail(status, ~self._native_domain(phi, theta), BEYOND)
        status = fail(status, ~(torch.isfinite(x) & torch.isfinite(y)), BEYOND)
        return self._finish(x * R2D, y * R2D, status, phi * R2D, theta * R2D, False, strict)

    def pix2wcs(self, x: Number, y: Number, strict: bool = True) -> Tuple[Tensor, Tensor]:
        """Plane coordinates to celestial ``(lon, lat)``, all in degrees, lon in [0, 360)."""
        phi, theta = self.project(x, y, strict=strict)
        alpha, delta = self.rotation.native_to_celestial(phi, theta)
        return alpha * R2D, delta * R2D

    def wcs2pix(self, lon: Number, lat: Number, strict: bool = True) -> Tuple[Tensor, Tensor]:
        """Celestial ``(lon, lat)`` to plane coordinates, all in degrees."""
        lon, lat = broadcast(lon, lat)
        valid = is_in_interval(lat, -90.0, 90.0)
        if strict and not bool(valid.all()):
            idx = int(torch.nonzero(~valid.flatten())[0])
            raise PixelBeyondProjectionError(
                float(lon.flatten()[idx]), float(lat.flatten()[idx]), False, code=self.code
            )
        lat = torch.where(valid, lat, torch.full_like(lat, math.nan))
        alpha = normalize_longitude(lon * D2R)
        phi, theta = self.rotation.celestial_to_native(alpha, lat * D2R)
        return self.project_inverse(phi, theta, strict=strict)

    def is_visible(self, lon: Number, lat: Number) -> Tensor:
        """Whether celestial ``(lon, lat)`` in degrees lies in the projection domain."""
        lon, lat = broadcast(lon, lat)
        phi, theta = self.rotation.celestial_to_native(normalize_longitude(lon * D2R), lat * D2R)
        return (
            is_in_interval(lat, -90.0, 90.0)
            & self._in_native_sphere(phi, theta)
            & self._native_domain(phi, theta)
        )

    @staticmethod
    def _in_native_sphere(phi: Tensor, theta: Tensor) -> Tensor:
        return torch.isfinite(phi) & is_in_interval(theta, -HALF_PI, HALF_PI)

    def _native_domain(self, phi: Tensor, theta: Tensor) -> Tensor:
        return torch.ones_like(theta, dtype=torch.bool)

    def _project(self, x: Tensor, y: Tensor) -> Tuple[Tensor, Tensor, Tensor]:
        raise NotImplementedError

    def _project_inverse(self, phi: Tensor, theta: Tensor):
        """Return ``(x, y)``, or ``(x, y, status)`` when a solver is involved."""
        raise NotImplementedError

    def _finish(
        self,
        a: Tensor,
        b: Tensor,
        status: Tensor,
        in_a: Tensor,
        in_b: Tensor,
        is_plane: bool,
        strict: bool,
    ) -> Tuple[Tensor, Tensor]:
        failed = status != OK
        if bool(failed.any()):
            if strict:
                idx = int(torch.nonzero(failed.flatten())[0])
                xv = float(in_a.flatten()[idx])
                yv = float(in_b.flatten()[idx])
                if int(status.flatten()[idx]) == UNSOLVED:
                    raise MathematicalSolutionError(
                        f"{self.code}: no solution for ({xv}, {yv})",
                        xv,
                        yv,
                        is_plane,
                        code=self.code,
                    )
                raise PixelBeyondProjectionError(xv, yv, is_plane, code=self.code)
            nan = torch.full_like(a, math.nan)
            a = torch.where(failed, nan, a)
            b = torch.where(failed, nan, b)
        return a, b

    def __repr__(self) -> str:
        params = "".join(f", {k}={v:g}" for k, v in self._params.items())
        return f"{type(self).__name__}(crval1={self.crval1:g}, crval2={self.crval2:g}{params})"

