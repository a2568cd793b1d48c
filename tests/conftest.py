from __future__ import annotations

import pytest

from model_config import (
    BottomWater, GridConfig, InitialConditions, ModelConfig, OrganicFlux,
    PorosityConfig, TimeConfig,
)
from sediment_core import SedimentModel

RHO_SW = 1027.0


def fixed_density(S, T, P):
    """Seawater density stand-in so tests do not depend on TEOS-10 numerics."""
    return RHO_SW


@pytest.fixture
def density():
    return fixed_density


@pytest.fixture
def small_config() -> ModelConfig:
    """A coarse column with a few thousand explicit steps."""
    return ModelConfig(
        grid=GridConfig(z_res=0.01, z_max=0.1, dbl=0.715e-3),
        time=TimeConfig(stoptime=2000 / 128000, interval=1 / 128000, save_every=500),
        water=BottomWater(T=0.84, S=34.696, P=3932.8, dO2_w=0.2255,
                          dtCO2_w=2.363, dtPO4_w=2.345e-3),
    )


@pytest.fixture
def model(small_config, density) -> SedimentModel:
    return SedimentModel(small_config, density=density).setup()


@pytest.fixture
def no_flux_config() -> ModelConfig:
    """No organic matter rain (so no bioturbation) and uniform porosity."""
    return ModelConfig(
        grid=GridConfig(z_res=0.02, z_max=0.1, dbl=0.01),
        time=TimeConfig(stoptime=3.0, interval=1e-3, save_every=100),
        porosity=PorosityConfig(phi0=0.8, phiInf=0.8, beta=33.0),
        water=BottomWater(T=2.0, S=34.7, P=4000.0, dO2_w=0.2, dtCO2_w=2.0, dtPO4_w=None),
        flux=OrganicFlux(Fpom=0.0),
        initial=InitialConditions(dO2_i=0.0, dtCO2_i=0.0, pfoc_i=0.0, psoc_i=0.0, proc_i=0.0),
    )
