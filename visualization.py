import numpy as np
import pandas as pd
from io import BytesIO
import plotly.express as px
import plotly.graph_objects as go

from sediment_core import SimulationResult

# display labels and units of the tracked species
SPECIES_LABELS = {
    "dO2": ("Dissolved O₂", "mol/m³"),
    "dtCO2": ("Dissolved inorganic C", "mol/m³"),
    "pfoc": ("Fast-degrading POC", "mol/m³"),
    "psoc": ("Slow-degrading POC", "mol/m³"),
    "proc": ("Refractory POC", "mol/m³"),
}


def _label(name):
    label, units = SPECIES_LABELS.get(name, (name, ""))
    return f"{label} ({units})" if units else label


def make_excel_workbook(result: SimulationResult):
    """
    Create a single Excel workbook with one sheet per species.
    Each sheet: rows = depth, columns = savepoint times (a).
    """
    buf = BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        for name in result.profiles:
            df = result.to_frame(name)
            df.to_excel(writer, sheet_name=name[:31] or "Species")
    buf.seek(0)
    return buf


def profiles_csv(result: SimulationResult, time_index: int = -1) -> str:
    """All species at one savepoint as a depth-indexed CSV table."""
    data = {name: arr[:, time_index] for name, arr in result.profiles.items()}
    df = pd.DataFrame(data, index=pd.Index(result.depths, name="depth (m)"))
    return df.to_csv()


# ------------------------ 2D VISUALISATIONS ----------------------------------


def profiles_over_depth_figure(depths, times, arr, name, time_indices):
    """
    Multiple profiles C(z) at selected savepoints, depth increasing downwards.
    arr shape: (n_depths, n_times)
    time_indices: list of indices into 'times'.
    """
    depths = np.asarray(depths)
    times = np.asarray(times)
    data_frames = []
    for idx in time_indices:
        if 0 <= idx < arr.shape[1]:
            data_frames.append(pd.DataFrame(
                {
                    "Depth (m)": depths,
                    "Value": arr[:, idx],
                    "Time": f"{times[idx]:.3g} a",
                }
            ))
    if not data_frames:
        data_frames.append(pd.DataFrame(
            {
                "Depth (m)": depths,
                "Value": arr[:, -1],
                "Time": f"{times[-1]:.3g} a",
            }
        ))

    df_all = pd.concat(data_frames, ignore_index=True)
    fig = px.line(
        df_all,
        x="Value",
        y="Depth (m)",
        color="Time",
        labels={"Value": _label(name)},
    )
    fig.update_yaxes(autorange="reversed")
    fig.update_layout(
        title=f"{SPECIES_LABELS.get(name, (name,))[0]} profiles at selected times",
        legend_title="Time",
    )
    return fig


def timeseries_figure(times, arr, name, z_location, depths):
    """
    Time series C(t) at the node closest to a chosen depth.
    """
    depths = np.asarray(depths)
    times = np.asarray(times)
    idx = int(np.argmin(np.abs(depths - z_location)))
    z_near = depths[idx]
    df = pd.DataFrame(
        {
            "Time (a)": times,
            "Value": arr[idx, :],
        }
    )
    fig = px.line(
        df,
        x="Time (a)",
        y="Value",
        labels={"Value": _label(name)},
    )
    fig.update_layout(
        title=f"{SPECIES_LABELS.get(name, (name,))[0]} at z ≈ {z_near:.3f} m",
    )
    return fig, z_near


def curtain_figure(depths, times, arr, name):
    """
    Depth-time "curtain" plot: C(z, t) as a heatmap.
    arr shape: (n_depths, n_times)
    """
    fig = go.Figure(
        data=go.Heatmap(
            x=np.asarray(times),
            y=np.asarray(depths),
            z=arr,
            colorscale="Viridis",
            colorbar=dict(title=_label(name)),
        )
    )
    fig.update_yaxes(autorange="reversed")
    fig.update_layout(
        xaxis_title="Time (a)",
        yaxis_title="Depth (m)",
        title=f"{SPECIES_LABELS.get(name, (name,))[0]} depth–time evolution",
    )
    return fig


def profile_animation_figure(depths, times, arr, name, max_frames=60, frame_duration_ms=150):
    """
    Animated depth profile over the savepoints.
    Play/pause + slider, with adjustable frame duration.
    """
    depths = np.asarray(depths)
    times = np.asarray(times)
    n_times = arr.shape[1]

    if n_times <= max_frames:
        frame_indices = np.arange(n_times)
    else:
        frame_indices = np.linspace(0, n_times - 1, max_frames).astype(int)

    finite = arr[np.isfinite(arr)]
    x_range = [float(finite.min()), float(finite.max())] if finite.size else None

    frames = [
        go.Frame(data=[go.Scatter(x=arr[:, idx], y=depths, mode="lines+markers")],
                 name=str(idx))
        for idx in frame_indices
    ]
    fig = go.Figure(
        data=[go.Scatter(x=arr[:, frame_indices[0]], y=depths, mode="lines+markers")],
        frames=frames,
    )
    fig.update_layout(
        title=f"{SPECIES_LABELS.get(name, (name,))[0]} profile animation",
        xaxis=dict(title=_label(name), range=x_range),
        yaxis=dict(title="Depth (m)", autorange="reversed"),
        updatemenus=[
            dict(
                type="buttons",
                showactive=False,
                buttons=[
                    dict(
                        label="Play",
                        method="animate",
                        args=[
                            None,
                            dict(
                                frame=dict(duration=frame_duration_ms, redraw=True),
                                fromcurrent=True,
                                transition=dict(duration=0),
                            ),
                        ],
                    ),
                    dict(
                        label="Pause",
                        method="animate",
                        args=[
                            [None],
                            dict(
                                frame=dict(duration=0, redraw=False),
                                mode="immediate",
                                transition=dict(duration=0),
                            ),
                        ],
                    ),
                ],
                x=0.1,
                y=0,
                xanchor="right",
                yanchor="top",
            )
        ],
        sliders=[
            dict(
                steps=[
                    dict(
                        method="animate",
                        args=[
                            [str(idx)],
                            dict(
                                mode="immediate",
                                frame=dict(duration=0, redraw=True),
                                transition=dict(duration=0),
                            ),
                        ],
                        label=f"{times[idx]:.3g}",
                    )
                    for idx in frame_indices
                ],
                x=0.1,
                y=0,
                xanchor="left",
                yanchor="top",
                pad=dict(t=50),
                len=0.9,
            )
        ],
    )
    return fig
