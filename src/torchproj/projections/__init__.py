"""
Spherical projections and their registry.

The set of projection codes is closed: ``PROJECTIONS`` maps every supported
three-letter code to its class.
"""

from typing import Dict, List, Type

from ..exceptions import BadProjectionParameterError
from .allsky import AIT, MOL, PAR, SFL
from .base import BEYOND, OK, UNSOLVED, Projection, ProjectionParameter
from .conic import COD, COE, COO, COP, ConicProjection
from .cylindrical import CAR, CEA, CYP, MER, CylindricalProjection
from .polyconic import BON, PCO, PolyconicProjection
from .zenithal import AIR, ARC, AZP, NCP, SIN, STG, SZP, TAN, ZEA, ZPN, ZenithalProjection

PROJECTIONS: Dict[str, Type[Projection]] = {
    cls.code: cls
    for cls in (
        AZP, SZP, TAN, STG, SIN, NCP, ARC, ZPN, ZEA, AIR,
        CYP, CEA, CAR, MER, SFL, PAR, MOL, AIT,
        COP, COE, COD, COO,
        BON, PCO,
    )
}


def available_projections() -> List[str]:
    """Supported projection codes."""
    return list(PROJECTIONS)


def create_projection(code: str, crval1: float = 0.0, crval2: float = 0.0, **params) -> Projection:
    """
    Build a projection from its code.

    Args:
        code: Three-letter projection code, e.g. ``"TAN"``. Case-insensitive.
        crval1, crval2: Fiducial point in degrees.
        **params: Projection parameters by name.

    Raises:
        BadProjectionParameterError: If the code is unknown or a parameter invalid.
    """
    try:
        cls = PROJECTIONS[code.strip().upper()]
    except KeyError:
        raise BadProjectionParameterError(f"unknown projection code {code!r}") from None
    return cls(crval1, crval2, **params)


__all__ = [
    "PROJECTIONS",
    "available_projections",
    "create_projection",
    "Projection",
    "ProjectionParameter",
    "ZenithalProjection",
    "CylindricalProjection",
    "ConicProjection",
    "PolyconicProjection",
    "OK",
    "BEYOND",
    "UNSOLVED",
] + list(PROJECTIONS)
