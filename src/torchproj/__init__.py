"""
torchproj: FITS WCS spherical map projections for PyTorch

This module provides the celestial projections of the FITS World Coordinate
System (Calabretta & Greisen 2002) as vectorised float64 tensor operations,
together with the spherical rotation between native and celestial
coordinates and a header driven pixel <-> world transform.
"""

from .config import ProjectionConfig, get_config, set_config
from .exceptions import (
    BadProjectionParameterError,
    MathematicalSolutionError,
    PixelBeyondProjectionError,
    ProjectionError,
    ProjectionInvariantError,
)
from .logging import set_log_level
from .projections import (
    PROJECTIONS,
    Projection,
    ProjectionParameter,
    available_projections,
    create_projection,
)
from .rotation import SphericalRotation
from .wcs import WCS

__version__ = "0.1.0"
__all__ = [
    # Projections
    "PROJECTIONS", "Projection", "ProjectionParameter",
    "available_projections", "create_projection",
    "SphericalRotation",
    # WCS
    "WCS",
    # Errors
    "ProjectionError", "BadProjectionParameterError", "PixelBeyondProjectionError",
    "MathematicalSolutionError", "ProjectionInvariantError",
    # Configuration
    "ProjectionConfig", "get_config", "set_config", "set_log_level",
]
