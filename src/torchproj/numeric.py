"""
Numerical helpers shared by the rotation and the projections.

Every function accepts Python floats or tensors and works element-wise on
``float64`` tensors, so a single call handles a scalar or a whole image of
coordinates. Root finders never raise per element: they return the root and
a boolean mask, and only raise ``MathematicalSolutionError`` when called with
``strict=True``.
"""

import math
from typing import Callable, Optional, Sequence, Tuple, Union

import torch
from torch import Tensor

from .config import get_config
from .exceptions import MathematicalSolutionError

# One tolerance for every comparison in the package.
DOUBLE_TOLERANCE = 1e-12

HALF_PI = math.pi * 0.5
TWO_PI = math.pi * 2.0
D2R = math.pi / 180.0
R2D = 180.0 / math.pi

Number = Union[float, Tensor]


def as_tensor(value: Number, like: Optional[Tensor] = None) -> Tensor:
    """Convert to a float64 tensor, on the device of ``like`` when given."""
    if isinstance(value, Tensor):
        return value.to(dtype=torch.float64)
    device = like.device if like is not None else None
    return torch.as_tensor(value, dtype=torch.float64, device=device)


def broadcast(*values: Number) -> Tuple[Tensor, ...]:
    """Convert all values to float64 tensors on a common device and broadcast them."""
    like = next((v for v in values if isinstance(v, Tensor)), None)
    tensors = [as_tensor(v, like) for v in values]
    return tuple(torch.broadcast_tensors(*tensors))


def almost_equal(a: Number, b: Number, eps: float = DOUBLE_TOLERANCE):
    """Symmetric tolerance comparison; returns a bool or a bool tensor."""
    return abs(a - b) <= eps


def is_in_interval(value: Number, lower: float, upper: float, eps: float = DOUBLE_TOLERANCE):
    """Inclusive interval test with the bounds matched within tolerance."""
    return (value >= lower - eps) & (value <= upper + eps)


def safe_asin(x: Number) -> Tensor:
    """Arcsine clamping ``|x| <= 1 + eps`` onto the domain; NaN beyond."""
    x = as_tensor(x)
    result = torch.asin(x.clamp(-1.0, 1.0))
    return torch.where(x.abs() > 1.0 + DOUBLE_TOLERANCE, torch.full_like(x, math.nan), result)


def safe_acos(x: Number) -> Tensor:
    """Arccosine clamping ``|x| <= 1 + eps`` onto the domain; NaN beyond."""
    x = as_tensor(x)
    result = torch.acos(x.clamp(-1.0, 1.0))
    return torch.where(x.abs() > 1.0 + DOUBLE_TOLERANCE, torch.full_like(x, math.nan), result)


def atan2_safe(y: Number, x: Number, fallback: float = 0.0) -> Tensor:
    """Two-argument arctangent returning ``fallback`` when both arguments vanish."""
    y, x = broadcast(y, x)
    degenerate = (y.abs() < DOUBLE_TOLERANCE) & (x.abs() < DOUBLE_TOLERANCE)
    return torch.where(degenerate, torch.full_like(y, fallback), torch.atan2(y, x))


def normalize_phi(phi: Number) -> Tensor:
    """Wrap a native longitude into (-pi, pi]."""
    phi = as_tensor(phi)
    return phi - TWO_PI * torch.ceil((phi - math.pi) / TWO_PI)


def normalize_longitude(lon: Number) -> Tensor:
    """Wrap a celestial longitude into [0, 2pi)."""
    lon = as_tensor(lon)
    wrapped = torch.remainder(lon, TWO_PI)
    # remainder of a tiny negative value rounds up to 2pi
    return torch.where(wrapped >= TWO_PI, torch.zeros_like(wrapped), wrapped)


def solve_bisection(
    func: Callable[[Tensor], Tensor],
    lo: Number,
    hi: Number,
    max_iter: Optional[int] = None,
    tol: float = DOUBLE_TOLERANCE,
    strict: bool = False,
) -> Tuple[Tensor, Tensor]:
    """
    Element-wise bisection for ``func(x) = 0`` on ``[lo, hi]``.

    The caller is responsible for choosing a bracket where ``func`` changes
    sign. Endpoints within ``tol`` of a root are accepted as is; otherwise an
    element converges when the bracket is narrower than ``tol``, which keeps
    the root accurate even where ``func`` is flat.

    Args:
        func: Vectorised scalar function, called with tensors of the bracket shape.
        lo, hi: Bracket bounds (broadcast against each other).
        max_iter: Iteration cap, defaults to ``get_config().bisection_max_iter``.
        tol: Convergence tolerance.
        strict: Raise ``MathematicalSolutionError`` if any element fails.

    Returns:
        root: Roots, NaN where the solve failed.
        converged: Boolean mask of elements with a valid root.
    """
    if max_iter is None:
        max_iter = get_config().bisection_max_iter
    lo, hi = broadcast(lo, hi)
    lo, hi = lo.clone(), hi.clone()

    f_lo = func(lo)
    f_hi = func(hi)
    bracketed = f_lo * f_hi <= 0.0

    at_lo = f_lo.abs() <= tol
    at_hi = (f_hi.abs() <= tol) & ~at_lo
    root = torch.where(at_lo, lo, torch.where(at_hi, hi, 0.5 * (lo + hi)))
    converged = at_lo | at_hi
    done = converged | ~bracketed

    for _ in range(max_iter):
        if bool(done.all()):
            break
        active = ~done
        mid = 0.5 * (lo + hi)
        f_mid = func(mid)
        root = torch.where(active, mid, root)

        hit = active & ((f_mid == 0.0) | ((hi - lo) <= tol))
        converged = converged | hit

        same_side = active & ~hit & (f_mid * f_lo > 0.0)
        other_side = active & ~hit & ~same_side
        lo = torch.where(same_side, mid, lo)
        f_lo = torch.where(same_side, f_mid, f_lo)
        hi = torch.where(other_side, mid, hi)
        done = done | hit

    converged = converged & bracketed | (at_lo | at_hi)
    root = torch.where(converged, root, torch.full_like(root, math.nan))

    if strict and not bool(converged.all()):
        if not bool(bracketed.all()):
            raise MathematicalSolutionError("No sign change found on the bracket")
        raise MathematicalSolutionError(f"Bisection did not converge after {max_iter} iterations")
    return root, converged


def solve_quadratic_nearest_pole(
    a: Number,
    b: Number,
    c: Number,
    pole: float,
    lower: float,
    upper: float,
    tol: float = DOUBLE_TOLERANCE,
    strict: bool = False,
) -> Tuple[Tensor, Tensor]:
    """
    Root of ``a x^2 + b x + c = 0`` nearest to ``pole`` inside ``[lower, upper]``.

    Roots within tolerance of the domain edges are clamped onto it, and a
    discriminant within tolerance of zero is taken as an exact double root. A
    discriminant more negative than the tolerance, or no root in the domain,
    flags the element. ``a ~ 0`` falls back to the linear root.
    """
    a, b, c = broadcast(a, b, c)
    linear = a.abs() < tol
    no_root = linear & (b.abs() < tol)

    disc = b * b - 4.0 * a * c
    disc = torch.where(disc.abs() <= tol, torch.zeros_like(disc), disc)
    sq = torch.sqrt(disc.clamp(min=0.0))
    two_a = 2.0 * torch.where(linear, torch.ones_like(a), a)
    r1 = (-b + sq) / two_a
    r2 = (-b - sq) / two_a

    r_lin = -c / torch.where(no_root | ~linear, torch.ones_like(b), b)
    r1 = torch.where(linear, r_lin, r1)
    r2 = torch.where(linear, r_lin, r2)

    valid1 = is_in_interval(r1, lower, upper, tol)
    valid2 = is_in_interval(r2, lower, upper, tol)
    pick1 = valid1 & (~valid2 | ((r1 - pole).abs() <= (r2 - pole).abs()))
    root = torch.where(pick1, r1, r2).clamp(lower, upper)

    ok = (linear | (disc >= -tol)) & ~no_root & (valid1 | valid2)
    root = torch.where(ok, root, torch.full_like(root, math.nan))

    if strict and not bool(ok.all()):
        raise MathematicalSolutionError("Quadratic has no root in the domain")
    return root, ok


def polynomial_degree(coeffs: Sequence[float]) -> int:
    """Effective degree of an ascending coefficient vector, -1 if all are zero."""
    for i in range(len(coeffs) - 1, -1, -1):
        if coeffs[i] != 0.0:
            return i
    return -1


def eval_polynomial(coeffs: Sequence[float], x: Number) -> Number:
    """Evaluate ``sum(coeffs[k] * x**k)`` with Horner's scheme."""
    result = 0.0
    for coeff in reversed(coeffs):
        result = result * x + coeff
    return result


def polynomial_derivative(coeffs: Sequence[float]) -> Tuple[float, ...]:
    """Ascending coefficients of the derivative; empty for a constant."""
    return tuple(k * coeffs[k] for k in range(1, len(coeffs)))


def polynomial_turning_point(
    coeffs: Sequence[float], upper: float = math.pi, tol: float = DOUBLE_TOLERANCE
) -> Tuple[float, float]:
    """
    First zero of the derivative walking away from 0, and the polynomial value there.

    The derivative is sampled in one degree steps up to ``upper``; the first
    sign change is refined with ten regula falsi steps. If the derivative stays
    positive the polynomial is monotonic and ``upper`` is returned.
    """
    deriv = polynomial_derivative(coeffs)
    x1 = 0.0
    d1 = eval_polynomial(deriv, 0.0)
    if d1 <= 0.0:
        return 0.0, eval_polynomial(coeffs, 0.0)

    n_steps = int(round(upper * R2D))
    x2 = d2 = None
    for i in range(1, n_steps + 1):
        x = min(i * D2R, upper)
        d = eval_polynomial(deriv, x)
        if d <= 0.0:
            x2, d2 = x, d
            break
        x1, d1 = x, d

    if x2 is None:
        return upper, eval_polynomial(coeffs, upper)

    x = x1
    for _ in range(10):
        x = x1 - d1 * (x2 - x1) / (d2 - d1)
        d = eval_polynomial(deriv, x)
        if abs(d) < tol:
            break
        if d < 0.0:
            x2, d2 = x, d
        else:
            x1, d1 = x, d
    return x, eval_polynomial(coeffs, x)


def solve_polynomial(
    coeffs: Sequence[float],
    target: Number,
    lower: float = 0.0,
    upper: float = math.pi,
    max_iter: Optional[int] = None,
    tol: float = DOUBLE_TOLERANCE,
    strict: bool = False,
) -> Tuple[Tensor, Tensor]:
    """
    Solve ``P(x) = target`` for ``x`` in ``[lower, upper]``.

    Degree 1 and 2 use closed forms (the quadratic keeps the root nearest
    ``lower``). Higher degrees use a weighted bisection that assumes ``P`` is
    increasing on the bracket, which holds up to the turning point returned by
    ``polynomial_turning_point``.
    """
    degree = polynomial_degree(coeffs)
    if degree < 1:
        raise ValueError("A polynomial of degree < 1 cannot be inverted")
    target = as_tensor(target)

    if degree == 1:
        root = (target - coeffs[0]) / coeffs[1]
        ok = is_in_interval(root, lower, upper, tol)
        root = torch.where(ok, root.clamp(lower, upper), torch.full_like(root, math.nan))
    elif degree == 2:
        root, ok = solve_quadratic_nearest_pole(
            coeffs[2], coeffs[1], coeffs[0] - target, lower, lower, upper, tol
        )
    else:
        if max_iter is None:
            max_iter = get_config().polynomial_max_iter
        root, ok = _weighted_bisection(coeffs[: degree + 1], target, lower, upper, max_iter, tol)

    if strict and not bool(ok.all()):
        raise MathematicalSolutionError("Polynomial has no root in the domain")
    return root, ok


def _weighted_bisection(
    coeffs: Sequence[float], target: Tensor, lower: float, upper: float, max_iter: int, tol: float
) -> Tuple[Tensor, Tensor]:
    x1 = torch.full_like(target, lower)
    x2 = torch.full_like(target, upper)
    r1 = torch.full_like(target, eval_polynomial(coeffs, lower))
    r2 = torch.full_like(target, eval_polynomial(coeffs, upper))

    in_range = (target >= r1 - tol) & (target <= r2 + tol)
    at_lower = in_range & (target <= r1)
    at_upper = in_range & (target >= r2) & ~at_lower
    root = torch.where(at_lower, x1, torch.where(at_upper, x2, torch.full_like(target, math.nan)))
    converged = at_lower | at_upper
    done = converged | ~in_range

    for _ in range(max_iter):
        if bool(done.all()):
            break
        active = ~done
        span = r2 - r1
        span = torch.where(span.abs() < tol, torch.ones_like(span), span)
        weight = ((r2 - target) / span).clamp(0.1, 0.9)
        x = x2 - weight * (x2 - x1)
        rt = eval_polynomial(coeffs, x)
        root = torch.where(active, x, root)

        below = active & (rt < target)
        above = active & ~below
        x1 = torch.where(below, x, x1)
        r1 = torch.where(below, rt, r1)
        x2 = torch.where(above, x, x2)
        r2 = torch.where(above, rt, r2)

        hit = active & (((rt - target).abs() < tol) | ((x2 - x1).abs() < tol))
        converged = converged | hit
        done = done | hit

    ok = in_range & converged
    return torch.where(ok, root, torch.full_like(root, math.nan)), ok
