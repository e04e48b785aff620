"""
Celestial WCS built on the projection classes.

``WCS`` reads the celestial keywords of an already parsed FITS header (a
dict, or anything with ``get``/``__contains__``) and converts pixel
coordinates to world coordinates and back:

    pixel -> (CRPIX, CD) -> intermediate (x, y) -> projection -> (phi, theta)
          -> rotation -> (lon, lat)
"""

import math
from typing import Any, Dict, Optional, Tuple, Union

import torch
from torch import Tensor

from .config import get_config
from .exceptions import BadProjectionParameterError
from .logging import log_errors, log_masked_points, log_performance, logger
from .projections import PROJECTIONS, Projection

# Scale of each CUNIT to degrees
UNIT_SCALE = {
    "": 1.0,
    "deg": 1.0,
    "arcmin": 1.0 / 60.0,
    "arcsec": 1.0 / 3600.0,
    "mas": 1.0 / 3.6e6,
    "rad": 180.0 / math.pi,
}


class WCS:
    """
    Two-dimensional celestial World Coordinate System.

    Args:
        header: FITS header mapping.
        **kwargs: Keyword overrides (``CRVAL1=...``, ``CTYPE1=...``, ``PV2_1=...``).

    Raises:
        BadProjectionParameterError: For an unknown projection code, unit or
            projection parameter.
    """

    def __init__(self, header: Optional[Dict[str, Any]] = None, **kwargs):
        self.wcs_params: Dict[str, Any] = {}
        if header is not None:
            self._parse_header(header)

        for k, v in kwargs.items():
            k_upper = k.upper()
            if k_upper.startswith(("CTYPE", "CUNIT")):
                self.wcs_params[k_upper] = str(v)
            else:
                self.wcs_params[k_upper] = float(v)

        self.device = torch.device(get_config().device)
        self._setup_tensors()
        self.projection = self._build_projection()

    def _parse_header(self, header: Dict[str, Any]):
        """Collect the celestial WCS keywords."""
        for i in (1, 2):
            if f"NAXIS{i}" in header:
                self.wcs_params[f"NAXIS{i}"] = int(header[f"NAXIS{i}"])
            self.wcs_params[f"CTYPE{i}"] = str(header.get(f"CTYPE{i}", ""))
            self.wcs_params[f"CRPIX{i}"] = float(header.get(f"CRPIX{i}", 0.0))
            self.wcs_params[f"CRVAL{i}"] = float(header.get(f"CRVAL{i}", 0.0))
            self.wcs_params[f"CDELT{i}"] = float(header.get(f"CDELT{i}", 1.0))
            if f"CUNIT{i}" in header:
                self.wcs_params[f"CUNIT{i}"] = str(header[f"CUNIT{i}"])

        for i in (1, 2):
            for j in (1, 2):
                for prefix in ("CD", "PC"):
                    key = f"{prefix}{i}_{j}"
                    if key in header:
                        self.wcs_params[key] = float(header[key])

        for key in ("CROTA2", "LONPOLE", "LATPOLE"):
            if key in header:
                self.wcs_params[key] = float(header[key])

        for i in (1, 2):
            for m in range(30):
                key = f"PV{i}_{m}"
                if key in header:
                    self.wcs_params[key] = float(header[key])

    def _unit_scale(self, axis: int) -> float:
        unit = str(self.wcs_params.get(f"CUNIT{axis}", "deg")).strip().lower()
        try:
            return UNIT_SCALE[unit]
        except KeyError:
            raise BadProjectionParameterError(f"unsupported CUNIT{axis} = {unit!r}") from None

    def _linear_matrix(self) -> Tuple[Tuple[float, float], Tuple[float, float]]:
        """CD matrix in header units: CD, else PC * CDELT, else CDELT with CROTA2."""
        params = self.wcs_params
        keys = [(i, j) for i in (1, 2) for j in (1, 2)]
        if any(f"CD{i}_{j}" in params for i, j in keys):
            return tuple(
                tuple(params.get(f"CD{i}_{j}", 0.0) for j in (1, 2)) for i in (1, 2)
            )

        cdelt1, cdelt2 = params.get("CDELT1", 1.0), params.get("CDELT2", 1.0)
        if any(f"PC{i}_{j}" in params for i, j in keys) or "CROTA2" not in params:
            cdelt = (cdelt1, cdelt2)
            return tuple(
                tuple(cdelt[i - 1] * params.get(f"PC{i}_{j}", 1.0 if i == j else 0.0) for j in (1, 2))
                for i in (1, 2)
            )

        crota = math.radians(params["CROTA2"])
        cos_r, sin_r = math.cos(crota), math.sin(crota)
        return (
            (cdelt1 * cos_r, -cdelt2 * sin_r),
            (cdelt1 * sin_r, cdelt2 * cos_r),
        )

    def _setup_tensors(self):
        """Convert the linear transformation to tensors."""
        self._scale = (self._unit_scale(1), self._unit_scale(2))
        self.crpix = torch.tensor(
            [self.wcs_params.get("CRPIX1", 0.0), self.wcs_params.get("CRPIX2", 0.0)],
            dtype=torch.float64,
            device=self.device,
        )
        self.cd = torch.tensor(self._linear_matrix(), dtype=torch.float64, device=self.device)
        self.cd = self.cd * torch.tensor(self._scale, dtype=torch.float64, device=self.device)[:, None]
        if abs(float(torch.det(self.cd))) == 0.0:
            raise BadProjectionParameterError("singular CD matrix")
        self.cd_inv = torch.inverse(self.cd)

    def _ctype_code(self, axis: int) -> str:
        """Projection code at characters 5-8 of ``CTYPEi``, e.g. ``TAN`` in ``RA---TAN``."""
        ctype = str(self.wcs_params.get(f"CTYPE{axis}", "")).strip().upper()
        if len(ctype) > 8:
            raise BadProjectionParameterError(
                f"distortion suffix {ctype[8:]!r} in CTYPE{axis} = {ctype!r} is not supported"
            )
        code = ctype[5:8]
        if len(ctype) != 8 or ctype[4] != "-" or code not in PROJECTIONS:
            raise BadProjectionParameterError(f"unsupported projection in CTYPE{axis} = {ctype!r}")
        return code

    def _build_projection(self) -> Projection:
        code = self._ctype_code(1)
        ctype2 = str(self.wcs_params.get("CTYPE2", "")).strip()
        if ctype2 and self._ctype_code(2) != code:
            raise BadProjectionParameterError(
                f"CTYPE1 and CTYPE2 name different projections: {code!r}, {ctype2!r}"
            )
        cls = PROJECTIONS[code]

        params = {
            p.name: self.wcs_params[p.pv_name]
            for p in cls.parameters
            if p.pv_name in self.wcs_params
        }
        crval1 = self.wcs_params.get("CRVAL1", 0.0) * self._scale[0]
        crval2 = self.wcs_params.get("CRVAL2", 0.0) * self._scale[1]
        projection = cls(crval1, crval2, **params)

        lonpole = self.wcs_params.get("LONPOLE", self.wcs_params.get("PV1_3"))
        latpole = self.wcs_params.get("LATPOLE", self.wcs_params.get("PV1_4"))
        if lonpole is not None or latpole is not None:
            projection.rotation.set_pole(
                phip=None if lonpole is None else math.radians(lonpole),
                thetap=None if latpole is None else math.radians(latpole),
            )
        logger.debug(f"WCS {code} with native pole {projection.native_pole}")
        return projection

    @property
    def projection_code(self) -> str:
        return self.projection.code

    def to(self, device: Union[str, torch.device]):
        """Move WCS parameters to specified device."""
        self.device = torch.device(device)
        self.crpix = self.crpix.to(self.device)
        self.cd = self.cd.to(self.device)
        self.cd_inv = self.cd_inv.to(self.device)
        return self

    def _as_points(self, args) -> Tuple[Tensor, bool]:
        if len(args) == 1:
            points = torch.as_tensor(args[0], dtype=torch.float64).to(self.device)
            return points, False
        if len(args) != 2:
            raise TypeError(f"expected one (..., 2) array or two arrays, got {len(args)} arguments")
        points = torch.stack(
            torch.broadcast_tensors(
                *[torch.as_tensor(a, dtype=torch.float64).to(self.device) for a in args]
            ),
            dim=-1,
        )
        return points, True

    @log_performance
    def pixel_to_world(self, *args, origin: int = 0) -> Union[Tensor, Tuple[Tensor, Tensor]]:
        """
        Convert pixel coordinates to world coordinates in degrees.

        Accepts either one ``(..., 2)`` array or separate ``x`` and ``y``
        arrays and returns the same layout. Pixels outside the projection
        come back as NaN.

        Args:
           origin: 0 for 0-based pixel indices, 1 for FITS 1-based indices.
        """
        pixels, separate = self._as_points(args)
        rel = pixels + (1 - origin) - self.crpix
        inter = rel @ self.cd.T

        lon, lat = self.projection.pix2wcs(inter[..., 0], inter[..., 1], strict=False)
        log_masked_points("pixel_to_world", int(torch.isnan(lon).sum()), lon.numel())

        if separate:
            return lon, lat
        return torch.stack([lon, lat], dim=-1)

    @log_performance
    def world_to_pixel(self, *args, origin: int = 0) -> Union[Tensor, Tuple[Tensor, Tensor]]:
        """
        Convert world coordinates in degrees to pixel coordinates.

        Same calling convention as ``pixel_to_world``; invisible positions
        come back as NaN.
        """
        world, separate = self._as_points(args)
        x, y = self.projection.wcs2pix(world[..., 0], world[..., 1], strict=False)
        log_masked_points("world_to_pixel", int(torch.isnan(x).sum()), x.numel())

        inter = torch.stack([x, y], dim=-1)
        pixels = inter @ self.cd_inv.T + self.crpix - (1 - origin)

        if separate:
            return pixels[..., 0], pixels[..., 1]
        return pixels

    @log_errors
    def pixel_to_world_strict(self, x, y, origin: int = 0) -> Tuple[Tensor, Tensor]:
        """Like ``pixel_to_world`` but raising on the first pixel outside the projection."""
        pixels, _ = self._as_points((x, y))
        inter = (pixels + (1 - origin) - self.crpix) @ self.cd.T
        return self.projection.pix2wcs(inter[..., 0], inter[..., 1], strict=True)

    @log_errors
    def world_to_pixel_strict(self, lon, lat, origin: int = 0) -> Tuple[Tensor, Tensor]:
        """Like ``world_to_pixel`` but raising on the first invisible position."""
        world, _ = self._as_points((lon, lat))
        x, y = self.projection.wcs2pix(world[..., 0], world[..., 1], strict=True)
        pixels = torch.stack([x, y], dim=-1) @ self.cd_inv.T + self.crpix - (1 - origin)
        return pixels[..., 0], pixels[..., 1]

    def is_visible(self, lon, lat) -> Tensor:
        """Whether world positions in degrees have an image under the projection."""
        world, _ = self._as_points((lon, lat))
        return self.projection.is_visible(world[..., 0], world[..., 1])

    inside = is_visible

    def _naxis(self, axis: int) -> int:
        key = f"NAXIS{axis}"
        if key not in self.wcs_params:
            raise BadProjectionParameterError(f"{key} not found in the header")
        return int(self.wcs_params[key])

    def center(self) -> Tuple[float, float]:
        """
        World position of the image centre, taken as FITS pixel
        ``(NAXIS1 / 2, NAXIS2 / 2)``.

        Raises:
            BadProjectionParameterError: If NAXIS1 or NAXIS2 is missing.
            PixelBeyondProjectionError: If the centre has no world position.
        """
        lon, lat = self.pixel_to_world_strict(
            0.5 * self._naxis(1), 0.5 * self._naxis(2), origin=1
        )
        return float(lon), float(lat)

    def fov(self) -> Tensor:
        """
        World positions of the four outer image corners as a ``(4, 2)`` tensor.

        The corners run (0.5, 0.5), (NAXIS1 + 0.5, 0.5), (NAXIS1 + 0.5,
        NAXIS2 + 0.5), (0.5, NAXIS2 + 0.5) in FITS pixels; a corner outside
        the projection is NaN.
        """
        n1, n2 = self._naxis(1) + 0.5, self._naxis(2) + 0.5
        corners = torch.tensor(
            [[0.5, 0.5], [n1, 0.5], [n1, n2], [0.5, n2]], dtype=torch.float64, device=self.device
        )
        return self.pixel_to_world(corners, origin=1)

    def __repr__(self) -> str:
        return f"WCS({self.projection!r}, crpix={self.crpix.tolist()})"
