from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Literal, Optional, Sequence, Union

import logging
import math
import threading

import numpy as np
import pandas as pd

import diagenesis_params as params
from model_config import ModelConfig

logger = logging.getLogger(__name__)

SOLUTE = "solute"
SOLID = "solid"
Kind = Literal["solute", "solid"]

# output order of the tracked species
SPECIES = ("dO2", "dtCO2", "pfoc", "psoc", "proc")


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass
class DepthGrid:
    """
    Depth axis with one ghost node above the surface (index 0) and one
    below the bottom (index n-1).  Ghost depths hold NaN sentinels.
    """
    z_res: float
    z_max: float
    depths: np.ndarray = field(default_factory=lambda: np.array([]))

    @classmethod
    def build(cls, z_res: float, z_max: float) -> "DepthGrid":
        if z_res <= 0 or z_max <= 0:
            raise ValueError("Depth resolution and extent must be positive")
        # last interior node is the deepest multiple of z_res not past z_max
        n_interior = int(math.floor(z_max / z_res + 1e-9)) + 1
        depths = np.arange(-1, n_interior + 1) * z_res
        depths[0] = np.nan
        depths[-1] = np.nan
        return cls(z_res=z_res, z_max=z_max, depths=depths)

    @property
    def ndepths(self) -> int:
        return len(self.depths)

    @property
    def z_res2(self) -> float:
        return self.z_res ** 2

    @property
    def interior(self) -> np.ndarray:
        return self.depths[1:-1]


@dataclass
class TimeSchedule:
    interval: float
    timesteps: np.ndarray
    savepoints: List[int]   # 1-based step indices

    @classmethod
    def build(cls, stoptime: float, interval: float, save_every: int) -> "TimeSchedule":
        if interval <= 0:
            raise ValueError("Time step must be positive")
        if save_every < 1:
            raise ValueError("save_every must be at least 1")
        n_steps = int(math.floor(stoptime / interval + 1e-9)) + 1
        timesteps = np.arange(n_steps) * interval
        savepoints = list(range(1, n_steps + 1, save_every))
        # save the final step even if the stride does not land on it
        if savepoints[-1] != n_steps:
            savepoints.append(n_steps)
        return cls(interval=interval, timesteps=timesteps, savepoints=savepoints)

    @property
    def n_steps(self) -> int:
        return len(self.timesteps)

    @property
    def n_savepoints(self) -> int:
        return len(self.savepoints)


@dataclass
class StateVariable:
    name: str
    kind: Kind
    previous: np.ndarray
    current: np.ndarray
    above: float                 # bottom-water concentration or flux/phiS at the surface
    diffusivity: np.ndarray
    save: np.ndarray             # [interior depth, 1 + savepoint]

    @classmethod
    def create(cls, name: str, kind: Kind, start: Union[float, Sequence[float]],
               above: float, diffusivity: np.ndarray, ndepths: int,
               n_savepoints: int) -> "StateVariable":
        if np.ndim(start) == 0:
            values = np.full(ndepths, float(start))
        else:
            start = np.asarray(start, dtype=float)
            if start.shape != (ndepths - 2,):
                raise ValueError(
                    f"Initial profile of {name} has {start.size} values, "
                    f"expected {ndepths - 2}")
            values = np.concatenate(([np.nan], start, [np.nan]))
        values[0] = np.nan
        values[-1] = np.nan
        save = np.full((ndepths - 2, n_savepoints + 1), np.nan)
        save[:, 0] = values[1:-1]
        return cls(name=name, kind=kind, previous=values.copy(), current=values.copy(),
                   above=above, diffusivity=diffusivity, save=save)

    def snapshot(self, column: int) -> None:
        self.save[:, column] = self.current[1:-1]

    def swap(self) -> None:
        self.previous[1:-1] = self.current[1:-1]


@dataclass
class Diagnostics:
    diffusion_number: Dict[str, float]
    courant_solute: float
    courant_solid: float
    irrigation_number: float
    peclet_max: float


@dataclass
class SimulationResult:
    depths: np.ndarray
    steps: np.ndarray            # 0 for the initial condition, then savepoint steps
    times: np.ndarray            # a
    profiles: Dict[str, np.ndarray]
    completed: bool = True

    def to_frame(self, name: str) -> pd.DataFrame:
        """Depth (rows) by savepoint time (columns) table for one species."""
        df = pd.DataFrame(self.profiles[name], index=self.depths, columns=self.times)
        df.index.name = "depth (m)"
        df.columns.name = "time (a)"
        return df


# =============================================================================
# REACTIONS
# =============================================================================

def limit_reaction_rates(dO2_now, pfoc_now, psoc_now, pfoc_then, psoc_then,
                         kfast, kslow, phiS_phi, interval):
    """
    Aerobic degradation of fast and slow POC with an ordered rate limiter.

    Maximum rates are first-order in the previous-step POC.  They are
    then cut back, in this order, so that oxygen, fast POC and slow POC
    (already updated by transport this step) cannot go negative:

    1. oxygen: consumption is cut to exhaust the stock, and split
       between fast and slow POC by their original rate ratio;
    2. fast POC: cut to exhaust the stock, oxygen recomputed;
    3. slow POC: cut to exhaust the stock, oxygen recomputed.

    Returns (R_dO2, R_dtCO2, R_pfoc, R_psoc).  Works on scalars or arrays.
    """
    dO2_now = np.asarray(dO2_now, dtype=float)
    pfoc_now = np.asarray(pfoc_now, dtype=float)
    psoc_now = np.asarray(psoc_now, dtype=float)

    R_pfoc = -np.asarray(pfoc_then, dtype=float) * kfast
    R_psoc = -np.asarray(psoc_then, dtype=float) * kslow
    R_dO2 = phiS_phi * (R_pfoc + R_psoc)

    short_o2 = dO2_now + interval * R_dO2 < 0.0
    if np.any(short_o2):
        R_dO2 = np.where(short_o2, -dO2_now / interval, R_dO2)
        total = R_pfoc + R_psoc
        # nothing to redistribute where neither pool reacts
        split = short_o2 & (total != 0.0)
        with np.errstate(divide="ignore", invalid="ignore"):
            _Rf = R_pfoc / total
            R_pfoc = np.where(split, _Rf * R_dO2 / phiS_phi, R_pfoc)
            R_psoc = np.where(split, (1.0 - _Rf) * R_dO2 / phiS_phi, R_psoc)

    short_f = pfoc_now + interval * R_pfoc < 0.0
    if np.any(short_f):
        R_pfoc = np.where(short_f, -pfoc_now / interval, R_pfoc)
        R_dO2 = np.where(short_f, phiS_phi * (R_pfoc + R_psoc), R_dO2)

    short_s = psoc_now + interval * R_psoc < 0.0
    if np.any(short_s):
        R_psoc = np.where(short_s, -psoc_now / interval, R_psoc)
        R_dO2 = np.where(short_s, phiS_phi * (R_pfoc + R_psoc), R_dO2)

    R_dtCO2 = -phiS_phi * (R_pfoc + R_psoc)
    return R_dO2, R_dtCO2, R_pfoc, R_psoc


# =============================================================================
# CORE ENGINE
# =============================================================================

class SedimentModel:
    def __init__(self, config: Optional[ModelConfig] = None,
                 density: params.DensityFunc = params.seawater_density):
        self.config = config or ModelConfig()
        self.density = density
        self.grid: Optional[DepthGrid] = None
        self.schedule: Optional[TimeSchedule] = None
        self.stoich: Optional[params.Stoichiometry] = None
        self.por: Optional[params.PorosityProfile] = None
        self.coef: Optional[params.TransportCoefficients] = None
        self.variables: Dict[str, StateVariable] = {}
        self.step_index = 0
        self._sp = 1
        self._savepoints = set()

    # -------------------------------------------------------------------------
    # SETUP
    # -------------------------------------------------------------------------

    def setup(self) -> "SedimentModel":
        """Derive the grids and coefficients and build the state variables."""
        cfg = self.config
        logger.info("Preparing to run...")

        self.grid = DepthGrid.build(cfg.grid.z_res, cfg.grid.z_max)
        self.schedule = TimeSchedule.build(cfg.time.stoptime, cfg.time.interval,
                                           cfg.time.save_every)
        self._savepoints = set(self.schedule.savepoints)
        self._sp = 1
        self.step_index = 0

        depths = self.grid.depths
        self.por = params.porosity(cfg.porosity.phi0, cfg.porosity.phiInf,
                                   cfg.porosity.beta, depths)
        self.stoich = params.stoichiometry(
            cfg.water.T, cfg.water.S, cfg.water.P, cfg.water.dtPO4_w,
            cfg.flux.Fpom, density=self.density,
            ratio=cfg.constants.redfield, rmm=cfg.constants.rmm)

        cfg.check_fractions()
        Fpoc = self.stoich.Fpoc
        Ffoc = Fpoc * cfg.flux.Fpom_f
        Fsoc = Fpoc * cfg.flux.Fpom_s
        Froc = Fpoc * cfg.flux.Fpom_r

        lengths = cfg.lengths
        self.coef = params.transport_coefficients(
            depths, cfg.grid.z_res, cfg.grid.dbl, self.por, Fpoc, cfg.flux.Fpom,
            cfg.flux.rho_p, cfg.water.T, cfg.water.dO2_w,
            lengths.lambda_b, lengths.lambda_f, lengths.lambda_s, lengths.lambda_i)

        ic = cfg.initial
        dO2_i = cfg.water.dO2_w if ic.dO2_i is None else ic.dO2_i
        dtCO2_i = cfg.water.dtCO2_w if ic.dtCO2_i is None else ic.dtCO2_i
        self.variables = {
            "dO2": self.make_solute("dO2", dO2_i, cfg.water.dO2_w, self.coef.D_dO2_tort2),
            "dtCO2": self.make_solute("dtCO2", dtCO2_i, cfg.water.dtCO2_w, self.coef.D_dtCO2_tort2),
            "pfoc": self.make_solid("pfoc", ic.pfoc_i, Ffoc, self.coef.D_bio),
            "psoc": self.make_solid("psoc", ic.psoc_i, Fsoc, self.coef.D_bio),
            "proc": self.make_solid("proc", ic.proc_i, Froc, self.coef.D_bio),
        }
        self.check_stability()
        return self

    def make_solute(self, name, start, above, diffusivity) -> StateVariable:
        return StateVariable.create(name, SOLUTE, start, above, diffusivity,
                                    self.grid.ndepths, self.schedule.n_savepoints)

    def make_solid(self, name, start, flux, diffusivity) -> StateVariable:
        # solids are forced by the deposition flux per unit solid volume
        above = flux / self.por.phiS[1]
        return StateVariable.create(name, SOLID, start, above, diffusivity,
                                    self.grid.ndepths, self.schedule.n_savepoints)

    # -------------------------------------------------------------------------
    # DIAGNOSTICS
    # -------------------------------------------------------------------------

    def diagnostics(self) -> Diagnostics:
        dt = self.config.time.interval
        z_res = self.grid.z_res
        inner = slice(1, -1)
        diffusion = {
            name: float(np.nanmax(var.diffusivity[inner])) * dt / self.grid.z_res2
            for name, var in self.variables.items()
        }
        peh = self.coef.Peh[inner]
        finite = peh[np.isfinite(peh)]
        return Diagnostics(
            diffusion_number=diffusion,
            courant_solute=float(np.nanmax(np.abs(self.coef.u[inner]))) * dt / z_res,
            courant_solid=float(np.nanmax(np.abs(self.coef.w[inner]))) * dt / z_res,
            irrigation_number=float(np.nanmax(self.coef.alpha[inner])) * dt,
            peclet_max=float(finite.max()) if finite.size else 0.0,
        )

    def check_stability(self) -> bool:
        """Warn when the explicit step is likely too long. Nothing is enforced."""
        diag = self.diagnostics()
        limits = self.config.constants
        stable = True
        for name, number in diag.diffusion_number.items():
            if number > limits.max_diffusion_number:
                logger.warning("Diffusion number of %s is %.3g (> %g): the time step "
                               "is likely too long for a stable explicit run.",
                               name, number, limits.max_diffusion_number)
                stable = False
        for label, number in (("solute", diag.courant_solute), ("solid", diag.courant_solid)):
            if number > limits.max_courant_number:
                logger.warning("Courant number for %s burial is %.3g (> %g).",
                               label, number, limits.max_courant_number)
                stable = False
        return stable

    # -------------------------------------------------------------------------
    # BOUNDARIES
    # -------------------------------------------------------------------------

    def substitute(self, var: StateVariable) -> None:
        """Fill the above-surface and below-bottom ghost nodes of `previous`."""
        then = var.previous
        c = self.coef
        if var.kind == SOLUTE:
            # diffusive boundary layer, as in RADI-Matlab and CANDI
            then[0] = then[2] + (var.above - then[1]) * c.TR
        elif c.D_bio[1] > 0.0:
            then[0] = then[2] + (var.above - c.w[1] * then[1]) * c.zr_Db_0
        elif c.w[1] > 0.0:
            # no mixing at the surface: flux carried by burial alone
            then[0] = var.above / c.w[1]
        else:
            then[0] = then[2]
        then[-1] = then[-3]

    # -------------------------------------------------------------------------
    # TRANSPORT
    # -------------------------------------------------------------------------
    # Each operator reads `previous` and accumulates interval*rate into
    # `current` on the interior nodes only.

    def advect(self, var: StateVariable) -> None:
        dt = self.config.time.interval
        z_res = self.grid.z_res
        then = var.previous
        p_up, p_mid, p_dn = then[2:], then[1:-1], then[:-2]
        if var.kind == SOLUTE:
            por = self.por
            D = var.diffusivity[1:-1]
            velocity = (self.coef.u[1:-1] - por.delta_phi[1:-1] * D / por.phi[1:-1]
                        - D * por.delta_tort2i_tort2[1:-1])
            var.current[1:-1] += dt * (-velocity * (p_up - p_dn) / (2.0 * z_res))
        else:
            c = self.coef
            var.current[1:-1] += dt * -c.APPW[1:-1] * (
                c.sigma1m[1:-1] * p_up + 2.0 * c.sigma[1:-1] * p_mid
                - c.sigma1p[1:-1] * p_dn) / (2.0 * z_res)

    def diffuse(self, var: StateVariable) -> None:
        dt = self.config.time.interval
        then = var.previous
        var.current[1:-1] += dt * ((then[:-2] - 2.0 * then[1:-1] + then[2:])
                                   * var.diffusivity[1:-1] / self.grid.z_res2)

    def irrigate(self, var: StateVariable) -> None:
        if var.kind != SOLUTE:
            return
        dt = self.config.time.interval
        var.current[1:-1] += dt * (self.coef.alpha[1:-1] * (var.above - var.previous[1:-1]))

    def transport(self, var: StateVariable) -> None:
        self.advect(var)
        self.diffuse(var)
        self.irrigate(var)

    def react(self) -> None:
        """Apply the limited degradation rates to the transport-updated state."""
        dt = self.config.time.interval
        v = self.variables
        inner = slice(1, -1)
        R_dO2, R_dtCO2, R_pfoc, R_psoc = limit_reaction_rates(
            v["dO2"].current[inner], v["pfoc"].current[inner], v["psoc"].current[inner],
            v["pfoc"].previous[inner], v["psoc"].previous[inner],
            self.coef.kfast[inner], self.coef.kslow[inner],
            self.por.phiS_phi[inner], dt)
        v["dO2"].current[inner] += dt * R_dO2
        v["dtCO2"].current[inner] += dt * R_dtCO2
        v["pfoc"].current[inner] += dt * R_pfoc
        v["psoc"].current[inner] += dt * R_psoc
        # refractory POC does not react

    # -------------------------------------------------------------------------
    # TIME LOOP
    # -------------------------------------------------------------------------

    def step(self) -> None:
        self.step_index += 1
        t = self.step_index
        for var in self.variables.values():
            self.substitute(var)
        for var in self.variables.values():
            self.transport(var)
        self.react()
        if t in self._savepoints:
            for var in self.variables.values():
                var.snapshot(self._sp)
            logger.info("Reached savepoint %d (step %d of %d)...",
                        self._sp, t, self.schedule.n_steps)
            self._sp += 1
        for var in self.variables.values():
            var.swap()

    def run_simulation(self) -> Iterator[float]:
        """Advance through every timestep, yielding the fraction completed."""
        if self.coef is None:
            self.setup()
        total_steps = self.schedule.n_steps
        while self.step_index < total_steps:
            self.step()
            yield self.step_index / total_steps

    def run(self, callback: Optional[Callable[[float], None]] = None,
            cancel: Optional[threading.Event] = None) -> SimulationResult:
        completed = True
        for progress in self.run_simulation():
            if callback:
                callback(progress)
            if cancel is not None and cancel.is_set():
                logger.warning("Run cancelled at step %d of %d.",
                               self.step_index, self.schedule.n_steps)
                completed = self.step_index >= self.schedule.n_steps
                break
        if completed:
            logger.info("Done!")
        return self.result(completed)

    def result(self, completed: bool = True) -> SimulationResult:
        steps = np.array([0] + list(self.schedule.savepoints))
        return SimulationResult(
            depths=self.grid.interior.copy(),
            steps=steps,
            times=steps * self.config.time.interval,
            profiles={name: self.variables[name].save.copy() for name in SPECIES},
            completed=completed,
        )
