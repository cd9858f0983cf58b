from __future__ import annotations

from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402

from .credible_intervals import CredibleInterval  # noqa: E402


def save_band_plot(
    time: np.ndarray,
    ci: CredibleInterval,
    path: Path,
    *,
    xlabel: str = "t",
    ylabel: str = "f(t)",
    title: str = "",
):
    x = np.asarray(time, dtype=float)
    y_mid = np.asarray(ci.median, dtype=float)
    if y_mid.shape != x.shape:
        raise ValueError(f"interval shape {y_mid.shape} does not match time grid {x.shape}.")
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig, ax = plt.subplots(figsize=(6, 4))
    ax.plot(x, y_mid, color="C0", lw=2)
    ax.fill_between(x, np.asarray(ci.lower), np.asarray(ci.upper), color="C0", alpha=0.25, linewidth=0)
    ax.set(xlabel=xlabel, ylabel=ylabel, title=title)
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    fig.savefig(path, dpi=200)
    plt.close(fig)


def save_surface_plot(
    time1: np.ndarray,
    time2: np.ndarray,
    surface: np.ndarray,
    path: Path,
    *,
    title: str = "",
):
    t1 = np.asarray(time1, dtype=float)
    t2 = np.asarray(time2, dtype=float)
    s = np.asarray(surface, dtype=float)
    if s.shape != (t1.size, t2.size):
        raise ValueError(f"surface shape {s.shape} does not match grids ({t1.size}, {t2.size}).")
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig, ax = plt.subplots(figsize=(5, 4))
    mesh = ax.pcolormesh(t2, t1, s, shading="auto", cmap="viridis")
    fig.colorbar(mesh, ax=ax)
    ax.set(xlabel="t2", ylabel="t1", title=title)
    fig.tight_layout()
    fig.savefig(path, dpi=200)
    plt.close(fig)
