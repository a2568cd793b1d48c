from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Dict, Optional, Sequence, Tuple, Union

import io
import logging
import math

import numpy as np
import pandas as pd

import diagenesis_params as params
from default_configs import DEFAULT_CSVS

logger = logging.getLogger(__name__)

FloatOrSequence = Union[float, Sequence[float], np.ndarray]


# ---------------------------------------------------------------------
# CONFIGURATION OBJECTS
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class GridConfig:
    z_res: float = 0.01     # m
    z_max: float = 0.4      # m
    dbl: float = 0.715e-3   # diffusive boundary layer thickness (m)


@dataclass(frozen=True)
class TimeConfig:
    stoptime: float = 200.0         # a
    interval: float = 1 / 128000    # a
    save_every: int = 128000        # steps


@dataclass(frozen=True)
class PorosityConfig:
    phi0: float = 0.91      # porosity at the surface
    phiInf: float = 0.74    # porosity at infinite depth
    beta: float = 33.0      # porosity-depth parameter (1/m)


@dataclass(frozen=True)
class LengthScales:
    lambda_b: float = 0.08  # bioturbation (m)
    lambda_f: float = 0.03  # fast-degrading POC (m)
    lambda_s: float = 1.0   # slow-degrading POC (m)
    lambda_i: float = 0.05  # irrigation (m)


@dataclass(frozen=True)
class BottomWater:
    """Overlying water. Concentrations in mol/m³."""
    T: float = 0.84         # degC
    S: float = 34.696       # practical salinity
    P: float = 3932.8       # dbar
    dO2_w: float = 0.2255
    dtCO2_w: float = 2.363
    dtPO4_w: Optional[float] = 2.345e-3


@dataclass(frozen=True)
class OrganicFlux:
    Fpom: float = 3.557128618867924   # g/m²/a
    Fpom_f: float = 0.65
    Fpom_s: float = 0.25
    Fpom_r: float = 0.1
    rho_p: float = 2.65e6             # solid density (g/m³)

    @property
    def fraction_total(self) -> float:
        return self.Fpom_f + self.Fpom_s + self.Fpom_r


@dataclass(frozen=True)
class InitialConditions:
    """
    Scalars or per-interior-depth sequences.  A solute left as None
    starts at its bottom-water concentration.
    """
    dO2_i: Optional[FloatOrSequence] = None
    dtCO2_i: Optional[FloatOrSequence] = None
    pfoc_i: FloatOrSequence = 0.0
    psoc_i: FloatOrSequence = 3.0e2
    proc_i: FloatOrSequence = 6.0e2


@dataclass(frozen=True)
class Constants:
    rmm: Tuple[float, float, float] = (params.RMM_CH2O, params.RMM_NH3, params.RMM_H3PO4)
    redfield: Tuple[float, float, float] = (params.REDFIELD_C, params.REDFIELD_N, params.REDFIELD_P)
    # thresholds above which the explicit scheme is reported as likely unstable
    max_diffusion_number: float = 0.5
    max_courant_number: float = 1.0


@dataclass(frozen=True)
class ModelConfig:
    grid: GridConfig = field(default_factory=GridConfig)
    time: TimeConfig = field(default_factory=TimeConfig)
    porosity: PorosityConfig = field(default_factory=PorosityConfig)
    lengths: LengthScales = field(default_factory=LengthScales)
    water: BottomWater = field(default_factory=BottomWater)
    flux: OrganicFlux = field(default_factory=OrganicFlux)
    initial: InitialConditions = field(default_factory=InitialConditions)
    constants: Constants = field(default_factory=Constants)

    def __post_init__(self) -> None:
        if self.grid.z_res <= 0 or self.grid.z_max <= 0:
            raise ValueError("Depth resolution and extent must be positive")
        if self.grid.dbl <= 0:
            raise ValueError("Diffusive boundary layer thickness must be positive")
        if self.time.interval <= 0 or self.time.stoptime < 0:
            raise ValueError("Time step must be positive and stop time non-negative")
        if self.time.save_every < 1:
            raise ValueError("save_every must be at least 1")
        if not (0.0 < self.porosity.phiInf <= self.porosity.phi0 < 1.0):
            raise ValueError("Porosity must satisfy 0 < phiInf <= phi0 < 1")

    def check_fractions(self) -> bool:
        """Warn (non-fatal) when the POM fractions do not add up to one."""
        total = self.flux.fraction_total
        if not math.isclose(total, 1.0):
            logger.warning("The fractions of POM do not add up to 1 (sum = %g); "
                           "continuing with the supplied values.", total)
            return False
        return True


# ---------------------------------------------------------------------
# DICT ROUND TRIP (used by the app for URL persistence)
# ---------------------------------------------------------------------


def _plain(value):
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, tuple):
        return list(value)
    return value


def config_to_dict(cfg: ModelConfig) -> Dict[str, Dict[str, object]]:
    out = {}
    for section, values in asdict(cfg).items():
        out[section] = {k: _plain(v) for k, v in values.items()}
    return out


_SECTIONS = {
    "grid": GridConfig,
    "time": TimeConfig,
    "porosity": PorosityConfig,
    "lengths": LengthScales,
    "water": BottomWater,
    "flux": OrganicFlux,
    "initial": InitialConditions,
    "constants": Constants,
}


def config_from_dict(data: Dict[str, Dict[str, object]]) -> ModelConfig:
    kwargs = {}
    for section, cls in _SECTIONS.items():
        values = dict(data.get(section, {}))
        if section == "constants":
            values = {k: tuple(v) if isinstance(v, list) else v for k, v in values.items()}
        if section == "time" and "save_every" in values:
            values["save_every"] = int(values["save_every"])
        kwargs[section] = cls(**values)
    return ModelConfig(**kwargs)


# ---------------------------------------------------------------------
# CSV LOADING
# ---------------------------------------------------------------------

# (csv block, label) -> (section, field)
_CSV_FIELDS = {
    ("Main", "StopTime"): ("time", "stoptime"),
    ("Main", "TimeStep"): ("time", "interval"),
    ("Main", "SaveEverySteps"): ("time", "save_every"),
    ("Grid", "DepthResolution"): ("grid", "z_res"),
    ("Grid", "DepthMax"): ("grid", "z_max"),
    ("Grid", "DiffusiveBoundaryLayer"): ("grid", "dbl"),
    ("Porosity", "PorositySurface"): ("porosity", "phi0"),
    ("Porosity", "PorosityInfinity"): ("porosity", "phiInf"),
    ("Porosity", "PorosityBeta"): ("porosity", "beta"),
    ("LengthScales", "Bioturbation"): ("lengths", "lambda_b"),
    ("LengthScales", "FastPOC"): ("lengths", "lambda_f"),
    ("LengthScales", "SlowPOC"): ("lengths", "lambda_s"),
    ("LengthScales", "Irrigation"): ("lengths", "lambda_i"),
    ("BottomWater", "Temperature"): ("water", "T"),
    ("BottomWater", "Salinity"): ("water", "S"),
    ("BottomWater", "Pressure"): ("water", "P"),
    ("BottomWater", "DissolvedOxygen"): ("water", "dO2_w"),
    ("BottomWater", "DissolvedInorganicCarbon"): ("water", "dtCO2_w"),
    ("BottomWater", "Phosphate"): ("water", "dtPO4_w"),
    ("Flux", "POMFlux"): ("flux", "Fpom"),
    ("Flux", "FastFraction"): ("flux", "Fpom_f"),
    ("Flux", "SlowFraction"): ("flux", "Fpom_s"),
    ("Flux", "RefractoryFraction"): ("flux", "Fpom_r"),
    ("Flux", "SolidDensity"): ("flux", "rho_p"),
    ("Initial", "DissolvedOxygen"): ("initial", "dO2_i"),
    ("Initial", "DissolvedInorganicCarbon"): ("initial", "dtCO2_i"),
    ("Initial", "FastPOC"): ("initial", "pfoc_i"),
    ("Initial", "SlowPOC"): ("initial", "psoc_i"),
    ("Initial", "RefractoryPOC"): ("initial", "proc_i"),
}

# bottom-water values per kg of seawater, converted with the density
_PER_KG = {"dO2_w", "dtCO2_w", "dtPO4_w"}


def read_csv_block(text: str) -> Dict[str, Optional[float]]:
    """Parse one 'Label:,value,unit' block. The first line is a title."""
    df = pd.read_csv(io.StringIO(text), header=None, names=["key", "value", "unit"],
                     skiprows=1, skipinitialspace=True)
    out = {}
    for _, row in df.iterrows():
        key = str(row["key"]).strip().rstrip(":")
        # drop a trailing unit in parentheses, e.g. "StopTime(years)"
        if "(" in key:
            key = key[:key.index("(")]
        val = row["value"]
        out[key] = None if pd.isna(val) else float(val)
    return out


def load_config_from_csvs(csvs: Optional[Dict[str, str]] = None,
                          density: params.DensityFunc = params.seawater_density) -> ModelConfig:
    csvs = DEFAULT_CSVS if csvs is None else csvs
    blocks = {name: read_csv_block(text) for name, text in csvs.items()}

    sections: Dict[str, Dict[str, object]] = {name: {} for name in _SECTIONS}
    for (block, label), (section, fname) in _CSV_FIELDS.items():
        if block not in blocks or label not in blocks[block]:
            raise KeyError(f"Missing configuration entry {block}/{label}")
        sections[section][fname] = blocks[block][label]

    water = sections["water"]
    rho_sw = density(water["S"], water["T"], water["P"])
    for key in _PER_KG:
        if water[key] is not None:
            water[key] = water[key] * 1e-6 * rho_sw
    if water["dO2_w"] is None or water["dtCO2_w"] is None:
        raise ValueError("Bottom-water oxygen and DIC must be supplied")

    for key in ("pfoc_i", "psoc_i", "proc_i"):
        if sections["initial"][key] is None:
            sections["initial"][key] = 0.0
    sections["time"]["save_every"] = int(sections["time"]["save_every"])
    sections["constants"] = {}

    cfg = config_from_dict(sections)
    logger.debug("Loaded configuration from %d CSV blocks", len(blocks))
    return cfg
