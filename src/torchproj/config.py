"""
Runtime configuration for torchproj.

Holds the iteration caps used by the root finders and the default device for
tensors created by the WCS layer. The comparison tolerance is not part of the
configuration: ``torchproj.numeric.DOUBLE_TOLERANCE`` is fixed.
"""

import os
from typing import Optional

from .logging import set_log_level


class ProjectionConfig:
    """Solver and device configuration."""

    def __init__(
        self,
        bisection_max_iter: int = 1000,
        polynomial_max_iter: int = 1000,
        device: str = "cpu",
    ):
        if bisection_max_iter < 1 or polynomial_max_iter < 1:
            raise ValueError("Iteration caps must be positive")
        self.bisection_max_iter = bisection_max_iter
        self.polynomial_max_iter = polynomial_max_iter
        self.device = device

    @classmethod
    def from_environment(cls) -> "ProjectionConfig":
        """Build a configuration from ``TORCHPROJ_*`` environment variables."""
        max_iter = os.environ.get("TORCHPROJ_MAX_ITER")
        device = os.environ.get("TORCHPROJ_DEVICE", "cpu")
        level = os.environ.get("TORCHPROJ_LOG_LEVEL")
        if level:
            set_log_level(level)

        if max_iter is None:
            return cls(device=device)
        n = int(max_iter)
        return cls(bisection_max_iter=n, polynomial_max_iter=n, device=device)

    def __repr__(self) -> str:
        return (
            f"ProjectionConfig(bisection_max_iter={self.bisection_max_iter}, "
            f"polynomial_max_iter={self.polynomial_max_iter}, device={self.device!r})"
        )


_config: Optional[ProjectionConfig] = None


def get_config() -> ProjectionConfig:
    """Return the active configuration, reading the environment on first use."""
    global _config
    if _config is None:
        _config = ProjectionConfig.from_environment()
    return _config


def set_config(config: ProjectionConfig) -> None:
    """Replace the active configuration."""
    global _config
    _config = config
