"""
Exception hierarchy for torchproj.

Recoverable failures derive from ``ProjectionError``: a bad parameter at
construction time, or a single point that has no image under the projection.
``ProjectionInvariantError`` signals a contradictory fixed configuration and
is not meant to be caught per point.
"""

from typing import Optional


class ProjectionError(ValueError):
    """Base class for recoverable projection failures."""

    def __init__(self, message: str = "", code: Optional[str] = None):
        self.code = code
        super().__init__(message)

    def __str__(self) -> str:
        message = super().__str__()
        return f"{self.code} - {message}" if self.code else message


class BadProjectionParameterError(ProjectionError):
    """A projection parameter is outside its valid domain."""

    def __str__(self) -> str:
        return f"Bad projection parameter for {super().__str__()}"


class PixelBeyondProjectionError(ProjectionError):
    """A point has no image under the projection.

    Attributes:
        x, y: Offending coordinates in degrees, either plane coordinates
            ``(x, y)`` or native spherical coordinates ``(phi, theta)``.
        is_plane_coordinate: True when ``(x, y)`` are plane coordinates.
    """

    def __init__(
        self,
        x: float,
        y: float,
        is_plane_coordinate: bool,
        message: str = "",
        code: Optional[str] = None,
    ):
        self.x = x
        self.y = y
        self.is_plane_coordinate = is_plane_coordinate
        if not message:
            coords = "(x,y)" if is_plane_coordinate else "(phi,theta)"
            message = f"Solution not defined for {coords} = ({x}, {y})"
        super().__init__(message, code)


class MathematicalSolutionError(PixelBeyondProjectionError):
    """A root finder found no bracket, did not converge or had no real root."""

    def __init__(
        self,
        message: str = "No solution found",
        x: float = float("nan"),
        y: float = float("nan"),
        is_plane_coordinate: bool = True,
        code: Optional[str] = None,
    ):
        super().__init__(x, y, is_plane_coordinate, message, code)


class ProjectionInvariantError(RuntimeError):
    """Fixed projection parameters contradict each other."""
