import streamlit as st
import numpy as np
import matplotlib.pyplot as plt
import json, base64, zlib

from model_config import (
    ModelConfig, config_from_dict, config_to_dict, load_config_from_csvs,
)
from sediment_core import SedimentModel, SPECIES
from logging_config import setup_logging
import visualization as viz

st.set_page_config(page_title="Sediment Early Diagenesis Model", layout="wide")
setup_logging()

# ======================================================================
# CONFIGURATION PERSISTENCE
#
# The configuration dictionary is compressed with zlib and base64
# encoded into the URL query parameters, so a run can be bookmarked
# or shared.
# ======================================================================

def _encode_config(cfg: dict) -> str:
    raw = json.dumps(cfg, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    comp = zlib.compress(raw, level=9)
    return base64.urlsafe_b64encode(comp).decode("ascii")

def _decode_config(s: str) -> dict:
    try:
        comp = base64.urlsafe_b64decode(s.encode("ascii"))
        raw = zlib.decompress(comp)
        return json.loads(raw.decode("utf-8"))
    except (ValueError, zlib.error):
        return {}

def load_config_from_url(default_cfg: dict) -> dict:
    params = st.query_params
    if "cfg" in params:
        cfg_dict = _decode_config(params.get("cfg"))
        if isinstance(cfg_dict, dict):
            merged = {k: dict(v) for k, v in default_cfg.items()}
            for section, values in cfg_dict.items():
                if section in merged and isinstance(values, dict):
                    merged[section].update(values)
            return merged
    return {k: dict(v) for k, v in default_cfg.items()}

def save_config_to_url(cfg: dict) -> None:
    st.query_params["cfg"] = _encode_config(cfg)

@st.cache_data
def default_config_dict() -> dict:
    return config_to_dict(load_config_from_csvs())

DEFAULT_CONFIG = default_config_dict()

if 'config' not in st.session_state:
    st.session_state['config'] = load_config_from_url(DEFAULT_CONFIG)

cfg = st.session_state['config']

# =============================================================================
# SIDEBAR
# =============================================================================
st.sidebar.title("Configuration")
stoptime = st.sidebar.number_input("Duration (years)", value=float(cfg['time']['stoptime']), step=1.0)
interval = st.sidebar.number_input("Time Step (years)", value=float(cfg['time']['interval']), format="%.3e")
save_every = st.sidebar.number_input("Save every N steps", value=int(cfg['time']['save_every']), min_value=1, step=1000)

st.sidebar.divider()
run_btn = st.sidebar.button("Run Simulation", type="primary")

with st.sidebar.expander("Session Management", expanded=False):
    if st.button("Reset Settings"):
        st.session_state['config'] = {k: dict(v) for k, v in DEFAULT_CONFIG.items()}
        save_config_to_url(st.session_state['config'])
        st.success("Settings reset to default")
        st.rerun()

# =============================================================================
# MAIN UI
# =============================================================================
st.title("1D Sediment Early Diagenesis Model")
main_tabs = st.tabs(["Grid & Porosity", "Bottom Water", "Organic Flux", "Initial Conditions", "Results"])

with main_tabs[0]:
    st.header("Depth Grid")
    col1, col2 = st.columns(2)
    with col1:
        z_res = st.number_input("Depth resolution (m)", value=float(cfg['grid']['z_res']), format="%.4f", step=0.001)
        z_max = st.number_input("Depth of column (m)", value=float(cfg['grid']['z_max']), step=0.05)
        dbl = st.number_input("Diffusive boundary layer (m)", value=float(cfg['grid']['dbl']), format="%.6f", step=0.0001)
    with col2:
        phi0 = st.number_input("Porosity at surface", value=float(cfg['porosity']['phi0']), step=0.01)
        phiInf = st.number_input("Porosity at depth", value=float(cfg['porosity']['phiInf']), step=0.01)
        beta = st.number_input("Porosity decay (1/m)", value=float(cfg['porosity']['beta']), step=1.0)

    st.markdown("##### Characteristic depths (m)")
    c1, c2, c3, c4 = st.columns(4)
    lambda_b = c1.number_input("Bioturbation", value=float(cfg['lengths']['lambda_b']), step=0.01)
    lambda_f = c2.number_input("Fast POC", value=float(cfg['lengths']['lambda_f']), step=0.01)
    lambda_s = c3.number_input("Slow POC", value=float(cfg['lengths']['lambda_s']), step=0.1)
    lambda_i = c4.number_input("Irrigation", value=float(cfg['lengths']['lambda_i']), step=0.01)

with main_tabs[1]:
    st.header("Overlying Water Column")
    col1, col2 = st.columns(2)
    with col1:
        T = st.number_input("Temperature (°C)", value=float(cfg['water']['T']), step=0.1)
        S = st.number_input("Salinity", value=float(cfg['water']['S']), step=0.1)
        P = st.number_input("Pressure (dbar)", value=float(cfg['water']['P']), step=10.0)
    with col2:
        dO2_w = st.number_input("O₂ (mol/m³)", value=float(cfg['water']['dO2_w']), format="%.4f")
        dtCO2_w = st.number_input("DIC (mol/m³)", value=float(cfg['water']['dtCO2_w']), format="%.4f")
        use_po4 = st.checkbox("Phosphate-dependent C:N:P", value=cfg['water']['dtPO4_w'] is not None)
        po4_default = cfg['water']['dtPO4_w'] if cfg['water']['dtPO4_w'] is not None else 2.3e-3
        dtPO4_w = st.number_input("PO₄ (mol/m³)", value=float(po4_default), format="%.6f", disabled=not use_po4)

with main_tabs[2]:
    st.header("Organic Matter Flux")
    col1, col2 = st.columns(2)
    with col1:
        Fpom = st.number_input("POM flux (g/m²/a)", value=float(cfg['flux']['Fpom']), step=0.1)
        rho_p = st.number_input("Solid density (g/m³)", value=float(cfg['flux']['rho_p']), step=1e4)
    with col2:
        Fpom_f = st.number_input("Fast fraction", value=float(cfg['flux']['Fpom_f']), step=0.05)
        Fpom_s = st.number_input("Slow fraction", value=float(cfg['flux']['Fpom_s']), step=0.05)
        Fpom_r = st.number_input("Refractory fraction", value=float(cfg['flux']['Fpom_r']), step=0.05)
    if abs(Fpom_f + Fpom_s + Fpom_r - 1.0) > 1e-9:
        st.warning(f"The fractions add up to {Fpom_f + Fpom_s + Fpom_r:.3f}, not 1. "
                   "The run will use them as given.")

with main_tabs[3]:
    st.header("Initial Conditions")
    st.caption("Leave the solutes at the bottom-water value or set a uniform value.")
    ic = cfg['initial']
    c1, c2 = st.columns(2)
    o2_bw = c1.checkbox("O₂ equal to bottom water", value=ic['dO2_i'] is None)
    dO2_i = None if o2_bw else c1.number_input("O₂ (mol/m³)", value=float(dO2_w))
    dic_bw = c2.checkbox("DIC equal to bottom water", value=ic['dtCO2_i'] is None)
    dtCO2_i = None if dic_bw else c2.number_input("DIC (mol/m³)", value=float(dtCO2_w))
    c1, c2, c3 = st.columns(3)
    pfoc_i = c1.number_input("Fast POC", value=float(np.mean(ic['pfoc_i'])))
    psoc_i = c2.number_input("Slow POC", value=float(np.mean(ic['psoc_i'])))
    proc_i = c3.number_input("Refractory POC", value=float(np.mean(ic['proc_i'])))

# =============================================================================
# RUN
# =============================================================================
if run_btn:
    new_cfg = {
        'grid': {'z_res': z_res, 'z_max': z_max, 'dbl': dbl},
        'time': {'stoptime': stoptime, 'interval': interval, 'save_every': int(save_every)},
        'porosity': {'phi0': phi0, 'phiInf': phiInf, 'beta': beta},
        'lengths': {'lambda_b': lambda_b, 'lambda_f': lambda_f, 'lambda_s': lambda_s, 'lambda_i': lambda_i},
        'water': {'T': T, 'S': S, 'P': P, 'dO2_w': dO2_w, 'dtCO2_w': dtCO2_w,
                  'dtPO4_w': dtPO4_w if use_po4 else None},
        'flux': {'Fpom': Fpom, 'Fpom_f': Fpom_f, 'Fpom_s': Fpom_s, 'Fpom_r': Fpom_r, 'rho_p': rho_p},
        'initial': {'dO2_i': dO2_i, 'dtCO2_i': dtCO2_i, 'pfoc_i': pfoc_i, 'psoc_i': psoc_i, 'proc_i': proc_i},
        'constants': cfg.get('constants', {}),
    }
    try:
        model_cfg: ModelConfig = config_from_dict(new_cfg)
    except ValueError as exc:
        st.error(f"Invalid configuration: {exc}")
        st.stop()

    model = SedimentModel(model_cfg).setup()
    diag = model.diagnostics()
    st.info(f"""
    **Stability numbers:**
    - Max diffusion number: {max(diag.diffusion_number.values()):.3g}
    - Courant (solid / solute): {diag.courant_solid:.3g} / {diag.courant_solute:.3g}
    - Irrigation number: {diag.irrigation_number:.3g}
    """)

    bar = st.progress(0.0, text="Calculating...")
    last = {"p": 0.0}

    def _progress(p):
        # redrawing the bar every step would dominate the run time
        if p - last["p"] >= 0.01 or p >= 1.0:
            bar.progress(min(p, 1.0), text=f"Calculating... {p:.0%}")
            last["p"] = p

    res = model.run(callback=_progress)
    st.session_state['results'] = res
    st.session_state['config'] = config_to_dict(model_cfg)
    save_config_to_url(st.session_state['config'])
    st.success("Simulation Complete")
    st.rerun()

# =============================================================================
# RESULTS
# =============================================================================
with main_tabs[4]:
    if 'results' in st.session_state:
        res = st.session_state['results']
        depths = res.depths
        times = res.times

        tab1, tab2, tab3, tab4 = st.tabs(["Profiles", "Time Series", "Depth-Time", "Tables"])

        with tab1:
            t_idx = st.slider("Savepoint", 0, len(times) - 1, len(times) - 1)
            cols = st.columns(len(SPECIES))
            for col, name in zip(cols, SPECIES):
                fig, ax = plt.subplots(figsize=(3, 5))
                ax.plot(res.profiles[name][:, t_idx], depths)
                ax.invert_yaxis()
                ax.set_title(f"{name} at {times[t_idx]:.3g} a")
                ax.set_ylabel("Depth (m)")
                ax.grid(True, alpha=0.3)
                col.pyplot(fig)
                plt.close(fig)
            sel = st.selectbox("Compare profiles of", SPECIES, key="prof_sel")
            picks = sorted({0, len(times) // 2, len(times) - 1})
            st.plotly_chart(viz.profiles_over_depth_figure(depths, times, res.profiles[sel], sel, picks),
                            use_container_width=True)

        with tab2:
            z_sel = st.selectbox("Depth (m)", depths)
            for name in SPECIES:
                fig, _ = viz.timeseries_figure(times, res.profiles[name], name, z_sel, depths)
                st.plotly_chart(fig, use_container_width=True)

        with tab3:
            sel = st.selectbox("Species", SPECIES, key="curtain_sel")
            st.plotly_chart(viz.curtain_figure(depths, times, res.profiles[sel], sel), use_container_width=True)
            st.plotly_chart(viz.profile_animation_figure(depths, times, res.profiles[sel], sel),
                            use_container_width=True)

        with tab4:
            sel = st.selectbox("Species", SPECIES, key="table_sel")
            df_table = res.to_frame(sel)
            st.dataframe(df_table, use_container_width=True)
            st.download_button(
                label="Download CSV",
                data=df_table.to_csv(),
                file_name=f"{sel}_depth_time.csv",
                mime="text/csv"
            )
            sp_idx = st.slider("Savepoint for the all-species profile", 0, len(times) - 1,
                               len(times) - 1, key="table_sp")
            st.download_button(
                label=f"Download CSV (all species at {times[sp_idx]:.3g} a)",
                data=viz.profiles_csv(res, sp_idx),
                file_name=f"profiles_{times[sp_idx]:.3g}a.csv",
                mime="text/csv"
            )
            st.download_button(
                label="Download Excel (all species)",
                data=viz.make_excel_workbook(res),
                file_name="sediment_results.xlsx",
                mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            )
