from __future__ import annotations

import math

import numpy as np
import pytest

import diagenesis_params as params
from sediment_core import DepthGrid

PHI0, PHI_INF, BETA = 0.91, 0.74, 33.0


@pytest.fixture
def depths() -> np.ndarray:
    return DepthGrid.build(0.01, 0.4).depths


@pytest.fixture
def por(depths) -> params.PorosityProfile:
    return params.porosity(PHI0, PHI_INF, BETA, depths)


# ── Porosity ─────────────────────────────────────────────────────────


def test_solid_and_pore_fractions_sum_to_one(por):
    inner = slice(1, -1)
    assert np.array_equal(por.phiS[inner] + por.phi[inner], np.ones(por.phi[inner].size))


def test_porosity_bounded_and_non_increasing(por):
    phi = por.phi[1:-1]
    assert np.all(phi > PHI_INF)
    assert np.all(phi <= PHI0 + 1e-15)
    assert phi[0] == pytest.approx(PHI0)
    assert np.all(np.diff(phi) <= 0.0)


def test_ghost_nodes_carry_nan_sentinels(por):
    assert np.isnan(por.phi[0]) and np.isnan(por.phi[-1])
    assert np.isnan(por.tort2[0]) and np.isnan(por.tort2[-1])


def test_tortuosity_closed_form(por):
    phi = por.phi[1:-1]
    assert np.array_equal(por.tort2[1:-1], 1.0 - 2.0 * np.log(phi))
    assert np.all(por.tort2[1:-1] > 1.0)


def test_porosity_derivatives_closed_form(por, depths):
    z = depths[1:-1]
    dphi = -BETA * (PHI0 - PHI_INF) * np.exp(-BETA * z)
    assert np.array_equal(por.delta_phi[1:-1], dphi)
    assert np.array_equal(por.delta_phiS[1:-1], -dphi)
    expected = 2.0 * dphi / (por.phi[1:-1] * por.tort2[1:-1] ** 2)
    assert np.array_equal(por.delta_tort2i[1:-1], expected)
    assert np.array_equal(por.delta_tort2i_tort2[1:-1], expected * por.tort2[1:-1])


def test_porosity_derivative_matches_finite_difference():
    z = np.linspace(0.0, 0.4, 4001)
    phi = params.phi(PHI0, PHI_INF, BETA, z)
    numeric = np.gradient(phi, z)
    analytic = params.delta_phi(PHI0, PHI_INF, BETA, z)
    assert np.allclose(numeric[1:-1], analytic[1:-1], rtol=1e-3)


# ── Stoichiometry ────────────────────────────────────────────────────


def test_canonical_redfield_ratio():
    assert params.redfield() == (1.0, 16.0 / 106.0, 1.0 / 106.0)


def test_phosphate_dependent_redfield_ratio():
    rho = 1045.0
    po4 = 2.2428e-6 * rho
    RC = 1.0 / (6.9e-3 * po4 / (1e-6 * rho) + 6e-3)
    ratios = params.redfield(po4, rho)
    assert ratios[0] == 1.0
    assert ratios[1] == pytest.approx(11.0 / RC)
    assert ratios[2] == pytest.approx(1.0 / RC)


def test_phosphate_ratio_requires_density():
    with pytest.raises(ValueError):
        params.redfield(2e-3)


def test_stoichiometry_canonical_path_uses_no_phosphate():
    st = params.stoichiometry(1.0, 35.0, 4000.0, None, 3.0, density=lambda S, T, P: 1030.0)
    Mpom = 30.031 + 16.0 / 106.0 * 17.031 + 1.0 / 106.0 * 97.994
    assert st.rho_sw == 1030.0
    assert st.Mpom == pytest.approx(Mpom)
    assert st.Fpoc == pytest.approx(3.0 / Mpom)


def test_stoichiometry_calls_density_with_salinity_temperature_pressure():
    seen = []

    def density(S, T, P):
        seen.append((S, T, P))
        return 1040.0

    params.stoichiometry(0.84, 34.696, 3932.8, 2.3e-3, 3.5, density=density)
    assert seen == [(34.696, 0.84, 3932.8)]


def test_seawater_density_is_plausible():
    rho = params.seawater_density(34.696, 0.84, 3932.8)
    assert 1040.0 < rho < 1050.0


# ── Bioturbation, irrigation, burial ────────────────────────────────


def test_bioturbation_vanishes_without_bottom_water_oxygen(depths):
    db = params.D_bio(depths[1:-1], 1e-5, 0.08, 0.0)
    assert np.all(db == 0.0)


def test_bioturbation_surface_value_scales_with_flux():
    assert params.D_bio_0(0.1) == pytest.approx(0.0232e-4 * 10.0 ** 0.85)
    assert params.D_bio_0(0.0) == 0.0


def test_irrigation_without_organic_flux():
    assert params.alpha_0(0.0, 0.2) == pytest.approx(11.0 * 0.25 - 0.9)


def test_irrigation_attenuates_with_depth(depths):
    a = params.alpha(2.0, depths[1:-1], 0.05)
    assert a[0] == 2.0
    assert np.all(np.diff(a) < 0.0)


def test_burial_flux_is_constant_with_depth(por):
    v0 = params.x0(3.5, 2.65e6, por.phiS[1])
    vinf = params.xinf(v0, por.phiS[1], por.phiS[-2])
    w = params.w(vinf, por.phiS)
    u = params.u(vinf, por.phi)
    assert np.allclose(w[1:-1] * por.phiS[1:-1], vinf * por.phiS[-2])
    assert np.allclose(u[1:-1] * por.phi[1:-1], vinf * por.phi[-2])


# ── Advection weighting ──────────────────────────────────────────────


def test_sigma_limits():
    s = params.sigma(np.array([0.0, 1e-4, 1.0, 50.0, np.inf]))
    assert s[0] == 0.0
    assert s[1] == pytest.approx(1e-4 / 3.0, rel=1e-3)
    assert s[2] == pytest.approx(1.0 / math.tanh(1.0) - 1.0)
    assert s[3] == pytest.approx(1.0 - 1.0 / 50.0)
    assert s[4] == 1.0


def test_peh_without_bioturbation_is_infinite():
    p = params.Peh(np.array([1e-5]), 0.01, np.array([0.0]))
    assert np.isposinf(p[0])
    assert params.sigma(p)[0] == 1.0


def test_sigma_without_burial_or_mixing_is_zero_on_interior():
    interior = np.array([False, True, False])
    s = params.sigma_from_burial(np.zeros(3), 0.01, np.zeros(3), interior=interior)
    assert s[1] == 0.0


# ── Diffusion coefficients ───────────────────────────────────────────


def test_free_diffusivity_linear_in_temperature():
    assert params.D_dO2(0.0) == 0.031558
    assert params.D_dO2(10.0) == pytest.approx(0.031558 + 0.01428)
    assert params.free_diffusivity("tCO2", 2.0) == params.D_dtCO2(2.0)
    assert params.free_diffusivity("HCO3", 2.0) == params.D_dtCO2(2.0)


def test_free_diffusivity_unknown_species():
    with pytest.raises(KeyError):
        params.free_diffusivity("Xe", 2.0)


# ── Assembled coefficients ───────────────────────────────────────────


def test_transport_coefficients(por, depths):
    c = params.transport_coefficients(depths, 0.01, 0.715e-3, por, 0.1, 3.5, 2.65e6,
                                      0.84, 0.22, 0.08, 0.03, 1.0, 0.05)
    inner = slice(1, -1)
    assert c.TR == pytest.approx(2.0 * 0.01 * por.tort2[1] / 0.715e-3)
    assert c.zr_Db_0 == pytest.approx(2.0 * 0.01 / c.D_bio[1])
    assert np.allclose(c.sigma1m[inner] + c.sigma1p[inner], 2.0)
    assert np.all((c.sigma[inner] >= 0.0) & (c.sigma[inner] <= 1.0))
    assert np.all(c.kfast[inner] == c.kfast[1])
    assert np.all(c.kfast[inner] > c.kslow[inner])
    assert np.allclose(c.D_dO2_tort2[inner] * por.tort2[inner], params.D_dO2(0.84))


def test_transport_coefficients_without_oxygen(por, depths):
    c = params.transport_coefficients(depths, 0.01, 0.715e-3, por, 0.1, 3.5, 2.65e6,
                                      0.84, 0.0, 0.08, 0.03, 1.0, 0.05)
    assert c.D_bio[1] == 0.0
    assert math.isinf(c.zr_Db_0)
    assert np.all(c.sigma[1:-1] == 1.0)
