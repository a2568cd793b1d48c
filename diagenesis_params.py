from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import math
import numpy as np
import gsw


# ---------------------------------------------------------------------
# SEAWATER AND ORGANIC MATTER STOICHIOMETRY
# ---------------------------------------------------------------------

DensityFunc = Callable[[float, float, float], float]

# relative molar masses of the organic matter building blocks (g/mol)
RMM_CH2O = 30.031
RMM_NH3 = 17.031
RMM_H3PO4 = 97.994

# canonical C:N:P of marine organic matter
REDFIELD_C = 106.0
REDFIELD_N = 16.0
REDFIELD_P = 1.0


def seawater_density(S: float, T: float, P: float) -> float:
    """Seawater density (kg/m³) from TEOS-10, called as gsw_rho(S, T, P)."""
    return float(gsw.rho(S, T, P))


def redfield(dtPO4_w: Optional[float] = None, rho_sw: Optional[float] = None,
             ratio: Tuple[float, float, float] = (REDFIELD_C, REDFIELD_N, REDFIELD_P)):
    """
    'Redfield' ratios for particulate organic matter, normalised to C.

    With bottom-water phosphate (mol/m³) and seawater density the P:C
    ratio follows Galbraith & Martiny (PNAS 2015), N is fixed at the
    60°S value of Martiny et al. (Nat. Geo. 2013) and P at 1.  Without
    phosphate the canonical ratio is returned.
    """
    if dtPO4_w is None:
        RC, RN, RP = ratio
        return 1.0, RN / RC, RP / RC
    if rho_sw is None:
        raise ValueError("rho_sw is required for the phosphate-dependent ratio")
    RC = 1.0 / (6.9e-3 * dtPO4_w / (1e-6 * rho_sw) + 6e-3)
    RN = 11.0
    RP = 1.0
    return 1.0, RN / RC, RP / RC


def rmm_pom(RC: float, RN: float, RP: float,
            rmm: Tuple[float, float, float] = (RMM_CH2O, RMM_NH3, RMM_H3PO4)) -> float:
    """Relative molar mass of POM in g/mol."""
    return RC * rmm[0] + RN * rmm[1] + RP * rmm[2]


@dataclass(frozen=True)
class Stoichiometry:
    rho_sw: float       # kg/m³
    RC: float
    RN: float
    RP: float
    Mpom: float         # g/mol
    Fpom_mol: float     # mol/m²/a
    Fpoc: float         # mol/m²/a


def stoichiometry(T: float, S: float, P: float, dtPO4_w: Optional[float],
                  Fpom: float, density: DensityFunc = seawater_density,
                  ratio: Tuple[float, float, float] = (REDFIELD_C, REDFIELD_N, REDFIELD_P),
                  rmm: Tuple[float, float, float] = (RMM_CH2O, RMM_NH3, RMM_H3PO4)) -> Stoichiometry:
    """Seawater density, organic matter ratios and the carbon flux from the POM mass flux."""
    rho_sw = density(S, T, P)
    RC, RN, RP = redfield(dtPO4_w, rho_sw, ratio=ratio)
    Mpom = rmm_pom(RC, RN, RP, rmm=rmm)
    Fpom_mol = Fpom / Mpom
    Fpoc = Fpom_mol * RC
    return Stoichiometry(rho_sw=rho_sw, RC=RC, RN=RN, RP=RP, Mpom=Mpom,
                         Fpom_mol=Fpom_mol, Fpoc=Fpoc)


# ---------------------------------------------------------------------
# POROSITY
# ---------------------------------------------------------------------

def phi(phi0, phiInf, beta, depths):
    return (phi0 - phiInf) * np.exp(-beta * depths) + phiInf


def phiS(phi):
    return 1.0 - phi


def tort2(phi):
    """Tortuosity squared following Boudreau (1996, GCA)."""
    return 1.0 - 2.0 * np.log(phi)


def delta_phi(phi0, phiInf, beta, depths):
    return -beta * (phi0 - phiInf) * np.exp(-beta * depths)


def delta_phiS(delta_phi):
    return -delta_phi


def delta_tort2i(delta_phi, phi, tort2):
    """1st depth derivative of the inverse tortuosity squared."""
    return 2.0 * delta_phi / (phi * tort2 ** 2)


@dataclass(frozen=True)
class PorosityProfile:
    phi: np.ndarray
    phiS: np.ndarray
    phiS_phi: np.ndarray
    tort2: np.ndarray
    delta_phi: np.ndarray
    delta_phiS: np.ndarray
    delta_tort2i: np.ndarray
    delta_tort2i_tort2: np.ndarray


def porosity(phi0: float, phiInf: float, beta: float, depths: np.ndarray) -> PorosityProfile:
    p = phi(phi0, phiInf, beta, depths)
    ps = phiS(p)
    t2 = tort2(p)
    dp = delta_phi(phi0, phiInf, beta, depths)
    dt2i = delta_tort2i(dp, p, t2)
    return PorosityProfile(
        phi=p,
        phiS=ps,
        phiS_phi=ps / p,
        tort2=t2,
        delta_phi=dp,
        delta_phiS=delta_phiS(dp),
        delta_tort2i=dt2i,
        delta_tort2i_tort2=dt2i * t2,
    )


# ---------------------------------------------------------------------
# BIOTURBATION, DEGRADATION AND BURIAL (Archer et al. 2002)
# ---------------------------------------------------------------------

def D_bio_0(Fpoc: float) -> float:
    """Surface bioturbation coefficient (m²/a)."""
    return 0.0232e-4 * (1e2 * Fpoc) ** 0.85


def D_bio(depths, D_bio_0, lambda_b, dO2_w):
    """Bioturbation vs depth, switched off as bottom-water O2 vanishes."""
    return D_bio_0 * np.exp(-(depths / lambda_b) ** 2) * dO2_w / (dO2_w + 0.02)


def delta_D_bio(depths, D_bio, lambda_b):
    return -2.0 * depths * D_bio / lambda_b ** 2


def krefractory(depths, D_bio_0):
    return 80.25 * D_bio_0 * np.exp(-depths)


def kfast(Fpoc, depths, lambda_f):
    # uniform in depth; lambda_f is kept for a depth-attenuated variant
    kfast_0 = 1.5e-1 * (1e2 * Fpoc) ** 0.85
    return np.full(np.shape(depths), kfast_0)


def kslow(Fpoc, depths, lambda_s):
    kslow_0 = 1.3e-4 * (1e2 * Fpoc) ** 0.85
    return np.full(np.shape(depths), kslow_0)


def x0(Fp: float, rho_p: float, phiS_2: float) -> float:
    """Bulk burial velocity at the sediment-water interface (m/a)."""
    return Fp / (rho_p * phiS_2)


def xinf(x0: float, phiS_2: float, phiS_e2: float) -> float:
    """Bulk burial velocity at infinite depth (m/a)."""
    return x0 * phiS_2 / phiS_e2


def u(xinf, phi):
    """Porewater burial velocity (m/a)."""
    return xinf * phi[-2] / phi


def w(xinf, phiS):
    """Solid burial velocity (m/a)."""
    return xinf * phiS[-2] / phiS


# ---------------------------------------------------------------------
# ADVECTION WEIGHTING (Fiadeiro & Veronis 1977; Boudreau 1996)
# ---------------------------------------------------------------------

def Peh(w, z_res, D_bio):
    """
    One half of the cell Peclet number (Boudreau 1996, eq. 97).

    Peh << 1: biodiffusion dominates; Peh >> 1: advection dominates.
    Where D_bio is zero the result is inf (or nan when w is zero too).
    """
    with np.errstate(divide="ignore", invalid="ignore"):
        return w * z_res / (2.0 * D_bio)


def sigma(Peh):
    """
    Advection weighting sigma (Boudreau 1996, eq. 96).

    Tends to 0 for Peh -> 0 (central differences) and to 1 for
    Peh -> inf (upwind).  Both limits are set explicitly, as is
    the no-advection no-mixing case (nan Peh on an interior node).
    """
    Peh = np.asarray(Peh, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        s = 1.0 / np.tanh(Peh) - 1.0 / Peh
    s = np.where(Peh == 0.0, 0.0, s)
    s = np.where(np.isposinf(Peh), 1.0, s)
    return s


def sigma_from_burial(w, z_res, D_bio, interior: Optional[np.ndarray] = None):
    p = Peh(w, z_res, D_bio)
    s = sigma(p)
    if interior is not None:
        # 0/0 on interior nodes: no burial and no mixing, weighting irrelevant
        s = np.where(interior & np.isnan(p), 0.0, s)
    return s


# ---------------------------------------------------------------------
# FREE-SOLUTION DIFFUSION COEFFICIENTS (m²/a, T in °C)
# ---------------------------------------------------------------------

# (intercept, slope) of the linear fits in temperature
FREE_DIFFUSION: Dict[str, Tuple[float, float]] = {
    "O2": (0.031558, 0.001428),
    "tCO2": (0.015179, 0.000795),   # approximated by bicarbonate (Hulse et al. 2018)
    "NO3": (0.030863, 0.001153),
    "SO4": (0.015779, 0.000712),
    "PO4": (0.009783, 0.000513),
    "NH4": (0.030926, 0.001225),
    "H2S": (0.028938, 0.001314),
    "Mn": (0.009625, 0.000481),
    "Fe": (0.010761, 0.000466),
    "HCO3": (0.015179, 0.000795),
    "Ca": (0.011771, 0.000529),
}


def free_diffusivity(species: str, T: float) -> float:
    a, b = FREE_DIFFUSION[species]
    return a + b * T


def D_dO2(T: float) -> float:
    return free_diffusivity("O2", T)


def D_dtCO2(T: float) -> float:
    return free_diffusivity("tCO2", T)


# ---------------------------------------------------------------------
# IRRIGATION (Archer et al. 2002)
# ---------------------------------------------------------------------

def alpha_0(Fpoc: float, dO2_w: float) -> float:
    """Surface irrigation intensity (1/a)."""
    f = 1e2 * Fpoc
    return (11.0 * (math.atan((f * 5.0 - 400.0) / 400.0) / math.pi + 0.5) - 0.9
            + 20.0 * (dO2_w / (dO2_w + 0.01)) * math.exp(-dO2_w / 0.01) * f / (f + 30.0))


def alpha(alpha_0, depths, lambda_i):
    return alpha_0 * np.exp(-(depths / lambda_i) ** 2)


# ---------------------------------------------------------------------
# CONVENIENCE TERMS
# ---------------------------------------------------------------------

def APPW(w, delta_D_bio, delta_phiS, D_bio, phiS):
    """Effective solid advection velocity including mixing gradients."""
    return w - delta_D_bio - delta_phiS * D_bio / phiS


def TR(z_res: float, tort2_2: float, dbl: float) -> float:
    """Diffusive boundary layer transfer term for the solute surface ghost."""
    return 2.0 * z_res * tort2_2 / dbl


@dataclass(frozen=True)
class TransportCoefficients:
    D_bio_0: float
    D_bio: np.ndarray
    delta_D_bio: np.ndarray
    kfast: np.ndarray
    kslow: np.ndarray
    krefractory: np.ndarray
    x0: float
    xinf: float
    u: np.ndarray
    w: np.ndarray
    Peh: np.ndarray
    sigma: np.ndarray
    sigma1m: np.ndarray
    sigma1p: np.ndarray
    D_dO2_tort2: np.ndarray
    D_dtCO2_tort2: np.ndarray
    alpha_0: float
    alpha: np.ndarray
    APPW: np.ndarray
    TR: float
    zr_Db_0: float


def transport_coefficients(depths: np.ndarray, z_res: float, dbl: float,
                           por: PorosityProfile, Fpoc: float, Fpom: float,
                           rho_p: float, T: float, dO2_w: float,
                           lambda_b: float, lambda_f: float,
                           lambda_s: float, lambda_i: float) -> TransportCoefficients:
    """Assemble every depth-dependent coefficient needed by the time loop."""
    db0 = D_bio_0(Fpoc)
    db = D_bio(depths, db0, lambda_b, dO2_w)
    ddb = delta_D_bio(depths, db, lambda_b)

    v0 = x0(Fpom, rho_p, por.phiS[1])
    vinf = xinf(v0, por.phiS[1], por.phiS[-2])
    uu = u(vinf, por.phi)
    ww = w(vinf, por.phiS)

    interior = ~np.isnan(depths)
    peh = Peh(ww, z_res, db)
    sg = sigma_from_burial(ww, z_res, db, interior=interior)

    a0 = alpha_0(Fpoc, dO2_w)
    zr_db_0 = 2.0 * z_res / db[1] if db[1] > 0.0 else math.inf

    return TransportCoefficients(
        D_bio_0=db0,
        D_bio=db,
        delta_D_bio=ddb,
        kfast=kfast(Fpoc, depths, lambda_f),
        kslow=kslow(Fpoc, depths, lambda_s),
        krefractory=krefractory(depths, db0),
        x0=v0,
        xinf=vinf,
        u=uu,
        w=ww,
        Peh=peh,
        sigma=sg,
        sigma1m=1.0 - sg,
        sigma1p=1.0 + sg,
        D_dO2_tort2=D_dO2(T) / por.tort2,
        D_dtCO2_tort2=D_dtCO2(T) / por.tort2,
        alpha_0=a0,
        alpha=alpha(a0, depths, lambda_i),
        APPW=APPW(ww, ddb, por.delta_phiS, db, por.phiS),
        TR=TR(z_res, por.tort2[1], dbl),
        zr_Db_0=zr_db_0,
    )
