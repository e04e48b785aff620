import math

import numpy as np
import pytest
import torch

import torchproj
from torchproj import (
    BadProjectionParameterError,
    PixelBeyondProjectionError,
    available_projections,
    create_projection,
)

PHI = [-170.0, -120.0, -45.0, 0.0, 30.0, 90.0, 150.0]

# code, parameters, native latitudes well inside the domain
CASES = [
    ("AZP", {"mu": 2.0, "gamma": 30.0}, [10.0, 45.0, 80.0]),
    ("AZP", {"mu": 0.5}, [10.0, 45.0, 80.0]),
    ("SZP", {"mu": 2.0, "phi_c": 180.0, "theta_c": 60.0}, [10.0, 45.0, 80.0]),
    ("TAN", {}, [10.0, 30.0, 60.0, 85.0]),
    ("STG", {}, [-30.0, 10.0, 60.0, 85.0]),
    ("SIN", {}, [10.0, 45.0, 80.0]),
    ("SIN", {"xi": 0.2, "eta": -0.1}, [20.0, 45.0, 80.0]),
    ("ARC", {}, [-60.0, 0.0, 45.0, 85.0]),
    ("ZPN", {"coefficients": (0.0, 1.0, 0.0, -0.05)}, [-30.0, 10.0, 45.0, 80.0]),
    ("ZEA", {}, [-60.0, 0.0, 45.0, 85.0]),
    ("AIR", {"theta_b": 45.0}, [-30.0, 10.0, 45.0, 80.0]),
    ("AIR", {}, [-30.0, 10.0, 45.0, 80.0]),
    ("CYP", {"mu": 1.0, "lam": 1.0}, [-80.0, -45.0, 0.0, 30.0, 75.0]),
    ("CYP", {"mu": 0.0, "lam": 0.8}, [-70.0, 0.0, 30.0, 70.0]),
    ("CEA", {"lam": 0.7}, [-80.0, -45.0, 0.0, 30.0, 75.0]),
    ("CAR", {}, [-80.0, -45.0, 0.0, 30.0, 75.0]),
    ("MER", {}, [-80.0, -45.0, 0.0, 30.0, 75.0]),
    ("SFL", {}, [-60.0, -30.0, 0.0, 30.0, 60.0]),
    ("PAR", {}, [-60.0, -30.0, 0.0, 30.0, 60.0]),
    ("MOL", {}, [-60.0, -30.0, 0.0, 30.0, 60.0]),
    ("AIT", {}, [-60.0, -30.0, 0.0, 30.0, 60.0]),
    ("COP", {"theta_a": 45.0, "eta": 10.0}, [-30.0, 0.0, 30.0, 60.0, 80.0]),
    ("COE", {"theta_a": 30.0, "eta": 15.0}, [-80.0, -30.0, 0.0, 45.0, 85.0]),
    ("COD", {"theta_a": -45.0, "eta": 10.0}, [-80.0, -30.0, 0.0, 45.0, 80.0]),
    ("COO", {"theta_a": 45.0, "eta": 15.0}, [-60.0, 0.0, 45.0, 80.0]),
    ("BON", {"theta1": 45.0}, [-60.0, 0.0, 30.0, 60.0]),
    ("BON", {"theta1": 0.0}, [-60.0, 0.0, 30.0, 60.0]),
]

# parameters making every code constructible at crval2 = 40
DEFAULT_PARAMS = {
    "AZP": {"mu": 2.0, "gamma": 30.0},
    "SZP": {"mu": 2.0, "phi_c": 180.0, "theta_c": 60.0},
    "AIR": {"theta_b": 45.0},
    "ZPN": {"coefficients": (0.0, 1.0, 0.0, 0.05)},
    "CEA": {"lam": 0.7},
    "COP": {"theta_a": 45.0, "eta": 10.0},
    "COE": {"theta_a": 30.0, "eta": 15.0},
    "COD": {"theta_a": 45.0, "eta": 10.0},
    "COO": {"theta_a": 45.0, "eta": 15.0},
    "BON": {"theta1": 45.0},
}

# parameter sets for the plane-first round trip and the visibility check,
# including perspective points above the plane and negative cylinder offsets
PARAMETER_CASES = [
    ("AZP", {"mu": 2.0, "gamma": 30.0}),
    ("AZP", {"mu": 0.5}),
    ("AZP", {"mu": -3.0}),
    ("AZP", {"mu": -1.5, "gamma": 20.0}),
    ("SZP", {"mu": 2.0, "phi_c": 180.0, "theta_c": 60.0}),
    ("SZP", {"mu": -3.0, "theta_c": 90.0}),
    ("SZP", {"mu": 5.0, "phi_c": 0.0, "theta_c": -30.0}),
    ("SZP", {"mu": -0.5, "phi_c": 45.0, "theta_c": 70.0}),
    ("AIR", {"theta_b": 45.0}),
    ("ZPN", {"coefficients": (0.0, 1.0, 0.0, -0.05)}),
    ("CYP", {"mu": 1.0, "lam": 1.0}),
    ("CYP", {"mu": -0.5, "lam": 1.0}),
    ("CYP", {"mu": -2.0, "lam": 1.0}),
    ("MOL", {}),
    ("PAR", {}),
    ("PCO", {}),
    ("COP", {"theta_a": 45.0, "eta": 10.0}),
    ("COE", {"theta_a": 30.0, "eta": 15.0}),
    ("COD", {"theta_a": -45.0, "eta": 10.0}),
    ("COO", {"theta_a": 45.0, "eta": 15.0}),
    ("BON", {"theta1": 45.0}),
]


def _native_grid(thetas, phis=PHI):
    p, t = torch.meshgrid(
        torch.tensor(phis, dtype=torch.float64),
        torch.tensor(thetas, dtype=torch.float64),
        indexing="ij",
    )
    return torch.deg2rad(p), torch.deg2rad(t)


def _case_id(case):
    code, params, _ = case
    return code + "".join(f"-{k}={v}" for k, v in params.items())


def _params_id(value):
    if isinstance(value, dict):
        return ",".join(f"{k}={v}" for k, v in value.items()) or "default"
    return value


def test_registry_is_complete() -> None:
    codes = available_projections()
    assert len(codes) == 24
    assert set(codes) == {
        "AZP", "SZP", "TAN", "STG", "SIN", "NCP", "ARC", "ZPN", "ZEA", "AIR",
        "CYP", "CEA", "CAR", "MER", "SFL", "PAR", "MOL", "AIT",
        "COP", "COE", "COD", "COO", "BON", "PCO",
    }
    for code, cls in torchproj.PROJECTIONS.items():
        assert cls.code == code
        assert cls.family in {"zenithal", "cylindrical", "conic", "polyconic"}


def test_create_projection_is_case_insensitive() -> None:
    proj = create_projection(" tan ", 10.0, 20.0)
    assert proj.code == "TAN"
    assert (proj.crval1, proj.crval2) == (10.0, 20.0)


def test_unknown_code_raises() -> None:
    with pytest.raises(BadProjectionParameterError, match="XYZ"):
        create_projection("XYZ")


@pytest.mark.parametrize("case", CASES, ids=_case_id)
def test_native_round_trip(case) -> None:
    code, params, thetas = case
    proj = create_projection(code, **params)
    phi, theta = _native_grid(thetas)

    x, y = proj.project_inverse(phi, theta)
    phi2, theta2 = proj.project(x, y)

    np.testing.assert_allclose(torch.rad2deg(phi2).numpy(), torch.rad2deg(phi).numpy(), atol=1e-9)
    np.testing.assert_allclose(torch.rad2deg(theta2).numpy(), torch.rad2deg(theta).numpy(), atol=1e-9)


def test_pco_round_trip() -> None:
    proj = create_projection("PCO")
    phi, theta = _native_grid([-60.0, -20.0, 0.0, 20.0, 60.0], [-90.0, -30.0, 0.0, 45.0, 90.0])

    x, y = proj.project_inverse(phi, theta)
    phi2, theta2 = proj.project(x, y)

    np.testing.assert_allclose(torch.rad2deg(phi2).numpy(), torch.rad2deg(phi).numpy(), atol=1e-9)
    np.testing.assert_allclose(torch.rad2deg(theta2).numpy(), torch.rad2deg(theta).numpy(), atol=1e-9)


def test_ncp_round_trip() -> None:
    proj = create_projection("NCP", 0.0, 60.0)
    phi, theta = _native_grid([40.0, 60.0, 85.0])

    x, y = proj.project_inverse(phi, theta)
    phi2, theta2 = proj.project(x, y)

    np.testing.assert_allclose(torch.rad2deg(phi2).numpy(), torch.rad2deg(phi).numpy(), atol=1e-9)
    np.testing.assert_allclose(torch.rad2deg(theta2).numpy(), torch.rad2deg(theta).numpy(), atol=1e-9)


@pytest.mark.parametrize("code", ["TAN", "STG", "ARC", "ZEA", "SIN", "CAR", "MER", "CEA", "SFL", "AIT"])
def test_plane_round_trip(code) -> None:
    proj = create_projection(code)
    grid = torch.linspace(-35.0, 35.0, 15, dtype=torch.float64)
    x, y = torch.meshgrid(grid, grid, indexing="ij")

    phi, theta = proj.project(x, y)
    x2, y2 = proj.project_inverse(phi, theta)

    np.testing.assert_allclose(x2.numpy(), x.numpy(), atol=1e-9)
    np.testing.assert_allclose(y2.numpy(), y.numpy(), atol=1e-9)


@pytest.mark.parametrize("code, params", PARAMETER_CASES, ids=_params_id)
def test_plane_round_trip_with_parameters(code, params) -> None:
    proj = create_projection(code, **params)
    grid = torch.linspace(-35.0, 35.0, 15, dtype=torch.float64)
    x, y = torch.meshgrid(grid, grid, indexing="ij")

    phi, theta = proj.project(x, y, strict=False)
    solved = torch.isfinite(phi) & torch.isfinite(theta)
    assert bool(solved.any())

    x2, y2 = proj.project_inverse(phi[solved], theta[solved])
    np.testing.assert_allclose(x2.numpy(), x[solved].numpy(), atol=1e-9)
    np.testing.assert_allclose(y2.numpy(), y[solved].numpy(), atol=1e-9)


@pytest.mark.parametrize("code", sorted(torchproj.PROJECTIONS))
def test_origin_maps_to_fiducial_point(code) -> None:
    proj = create_projection(code, 30.0, 40.0, **DEFAULT_PARAMS.get(code, {}))

    lon, lat = proj.pix2wcs(0.0, 0.0)
    assert math.remainder(float(lon) - 30.0, 360.0) == pytest.approx(0.0, abs=1e-9)
    assert float(lat) == pytest.approx(40.0, abs=1e-9)

    x, y = proj.wcs2pix(30.0, 40.0)
    assert float(x) == pytest.approx(0.0, abs=1e-9)
    assert float(y) == pytest.approx(0.0, abs=1e-9)


@pytest.mark.parametrize("code", sorted(torchproj.PROJECTIONS))
def test_visibility_agrees_with_inverse(code) -> None:
    proj = create_projection(code, 30.0, 40.0, **DEFAULT_PARAMS.get(code, {}))
    lon, lat = torch.meshgrid(
        torch.arange(0.0, 360.0, 10.0, dtype=torch.float64),
        torch.arange(-85.0, 90.0, 10.0, dtype=torch.float64),
        indexing="ij",
    )

    visible = proj.is_visible(lon, lat)
    x, y = proj.wcs2pix(lon, lat, strict=False)

    assert torch.equal(visible, torch.isfinite(x) & torch.isfinite(y))
    assert bool(visible.any())


@pytest.mark.parametrize("code, params", PARAMETER_CASES, ids=_params_id)
def test_visibility_agrees_with_inverse_with_parameters(code, params) -> None:
    proj = create_projection(code, 30.0, 40.0, **params)
    lon, lat = torch.meshgrid(
        torch.arange(0.0, 360.0, 10.0, dtype=torch.float64),
        torch.arange(-85.0, 90.0, 10.0, dtype=torch.float64),
        indexing="ij",
    )

    visible = proj.is_visible(lon, lat)
    x, y = proj.wcs2pix(lon, lat, strict=False)

    assert torch.equal(visible, torch.isfinite(x) & torch.isfinite(y))
    assert bool(visible.any())


@pytest.mark.parametrize("code", sorted(torchproj.PROJECTIONS))
def test_celestial_round_trip(code) -> None:
    proj = create_projection(code, 30.0, 40.0, **DEFAULT_PARAMS.get(code, {}))
    lon, lat = torch.meshgrid(
        torch.arange(0.0, 360.0, 15.0, dtype=torch.float64),
        torch.arange(-75.0, 90.0, 15.0, dtype=torch.float64),
        indexing="ij",
    )
    # stay clear of the edges where the plane coordinates diverge
    x, y = proj.wcs2pix(lon, lat, strict=False)
    keep = torch.isfinite(x) & (torch.hypot(x, y) < 150.0)
    x, y, lon, lat = x[keep], y[keep], lon[keep], lat[keep]

    lon2, lat2 = proj.pix2wcs(x, y)
    dlon = torch.remainder(lon2 - lon + 180.0, 360.0) - 180.0
    np.testing.assert_allclose((dlon * torch.cos(torch.deg2rad(lat))).numpy(), 0.0, atol=1e-8)
    np.testing.assert_allclose(lat2.numpy(), lat.numpy(), atol=1e-8)


def test_strict_errors_carry_coordinates() -> None:
    arc = create_projection("ARC")
    with pytest.raises(PixelBeyondProjectionError) as excinfo:
        arc.project(torch.tensor([0.0, 200.0]), torch.tensor([0.0, 0.0]))
    assert excinfo.value.is_plane_coordinate
    assert (excinfo.value.x, excinfo.value.y) == (200.0, 0.0)
    assert excinfo.value.code == "ARC"

    tan = create_projection("TAN")
    with pytest.raises(PixelBeyondProjectionError) as excinfo:
        tan.project_inverse(0.0, -0.5)
    assert not excinfo.value.is_plane_coordinate
    assert excinfo.value.y == pytest.approx(math.degrees(-0.5))


def test_non_strict_masks_failures_with_nan() -> None:
    zea = create_projection("ZEA")
    phi, theta = zea.project(torch.tensor([0.0, 120.0, 10.0]), torch.tensor([0.0, 0.0, 10.0]), strict=False)

    assert torch.isnan(phi[1]) and torch.isnan(theta[1])
    assert torch.isfinite(phi[[0, 2]]).all()
    assert torch.isfinite(theta[[0, 2]]).all()


def test_wcs2pix_rejects_invalid_latitude() -> None:
    tan = create_projection("TAN")
    with pytest.raises(PixelBeyondProjectionError):
        tan.wcs2pix(0.0, 91.0)
    x, y = tan.wcs2pix(torch.tensor([0.0, 0.0]), torch.tensor([91.0, 80.0]), strict=False)
    assert torch.isnan(x[0]) and torch.isnan(y[0])
    assert torch.isfinite(x[1])


def test_nan_input_gives_nan_output() -> None:
    car = create_projection("CAR")
    lon, lat = car.pix2wcs(torch.tensor([math.nan, 1.0]), torch.tensor([0.0, 1.0]), strict=False)
    assert torch.isnan(lon[0]) and torch.isnan(lat[0])
    assert float(lon[1]) == pytest.approx(1.0)


def test_pix2wcs_longitude_range() -> None:
    car = create_projection("CAR", 350.0, 0.0)
    lon, _ = car.pix2wcs(torch.tensor([-20.0, 0.0, 20.0]), torch.zeros(3))
    np.testing.assert_allclose(lon.numpy(), [330.0, 350.0, 10.0], atol=1e-9)


def test_batch_shape_is_preserved() -> None:
    tan = create_projection("TAN", 10.0, 20.0)
    x = torch.zeros(2, 3, 4, dtype=torch.float64)
    lon, lat = tan.pix2wcs(x, 1.0)
    assert lon.shape == (2, 3, 4)
    assert lat.shape == (2, 3, 4)


def test_metadata() -> None:
    azp = create_projection("AZP", mu=2.0, gamma=30.0)
    assert azp.name == "zenithal perspective"
    assert azp.description == "mu=2 gamma=30"
    assert azp.parameter_values == {"mu": 2.0, "gamma": 30.0}
    assert [(p.name, p.pv_name) for p in azp.parameters] == [("mu", "PV2_1"), ("gamma", "PV2_2")]
    assert azp.native_reference == pytest.approx((0.0, 90.0))
    assert repr(azp) == "AZP(crval1=0, crval2=0, mu=2, gamma=30)"

    cod = create_projection("COD", theta_a=45.0, eta=10.0)
    assert cod.native_reference == pytest.approx((0.0, 45.0))

    tan = create_projection("TAN", 30.0, 40.0)
    assert tan.native_pole == pytest.approx((30.0, 40.0))
    assert tan.description == "gnomonic"


@pytest.mark.parametrize(
    "code, crval2, params",
    [
        ("AZP", 0.0, {"mu": -1.0}),
        ("AZP", 0.0, {"gamma": 90.0}),
        ("SZP", 0.0, {"mu": -1.0, "theta_c": 90.0}),
        ("AIR", 0.0, {"theta_b": -90.0}),
        ("AIR", 0.0, {"theta_b": 95.0}),
        ("ZPN", 0.0, {"coefficients": (0.0, 0.0)}),
        ("ZPN", 0.0, {"coefficients": (1.0,)}),
        ("ZPN", 0.0, {"coefficients": (0.0, -1.0, 0.1)}),
        ("ZPN", 0.0, {"coefficients": [0.0, 1.0] + [0.0] * 29}),
        ("CEA", 0.0, {"lam": 0.0}),
        ("CEA", 0.0, {"lam": 1.5}),
        ("CYP", 0.0, {"lam": 0.0}),
        ("CYP", 0.0, {"mu": -1.0, "lam": 1.0}),
        ("COP", 0.0, {"theta_a": 0.0}),
        ("COD", 0.0, {"theta_a": 0.0, "eta": 10.0}),
        ("COE", 0.0, {"theta_a": 0.0, "eta": 10.0}),
        ("COO", 0.0, {"theta_a": 0.0}),
        ("COP", 0.0, {"theta_a": 80.0, "eta": 20.0}),
        ("COP", 0.0, {}),
        ("BON", 0.0, {}),
        ("TAN", 0.0, {"mu": 1.0}),
        ("NCP", 0.0, {}),
        ("TAN", 91.0, {}),
    ],
)
def test_invalid_configuration_raises(code, crval2, params) -> None:
    with pytest.raises(BadProjectionParameterError):
        create_projection(code, 0.0, crval2, **params)


def test_update_parameters_rebuilds_state() -> None:
    azp = create_projection("AZP", 10.0, 20.0, mu=2.0)
    azp.update_parameters(mu=3.0)
    assert azp.mu == 3.0
    assert azp.description == "mu=3 gamma=0"

    with pytest.raises(BadProjectionParameterError):
        azp.update_parameters(mu=-1.0)
    assert azp.mu == 3.0
    assert azp.parameter_values["mu"] == 3.0


def test_update_parameters_moves_conic_reference() -> None:
    cod = create_projection("COD", 30.0, 45.0, theta_a=45.0)
    cod.update_parameters(theta_a=30.0)

    assert cod.native_reference == pytest.approx((0.0, 30.0))
    lon, lat = cod.pix2wcs(0.0, 0.0)
    assert float(lon) == pytest.approx(30.0)
    assert float(lat) == pytest.approx(45.0)


def test_update_parameters_keeps_requested_phip() -> None:
    car = create_projection("CAR", 0.0, 0.0)
    car.set_phip(180.0)
    pole = car.native_pole
    car.update_parameters()
    assert car.rotation.phip == pytest.approx(math.pi)
    assert car.native_pole == pytest.approx(pole)


def test_set_thetap_selects_southern_pole() -> None:
    car = create_projection("CAR", 0.0, 30.0)
    assert car.native_pole[1] == pytest.approx(60.0)
    car.set_thetap(-90.0)
    assert car.native_pole[1] == pytest.approx(-60.0)
    lon, lat = car.pix2wcs(0.0, 0.0)
    assert float(lat) == pytest.approx(30.0)
