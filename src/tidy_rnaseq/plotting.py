"""Plots of experiments and differential results.

Every function returns a ``matplotlib.figure.Figure`` and saves it when
`save_path` is given. Plots consume tables only; they never feed back into
the workflow.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns

from .errors import SchemaError
from .experiment import assay_array, column_data_frame
from .normalization import cpm
from .reshape import pivot_longer

logger = logging.getLogger(__name__)

TEXT_COLOR = "#2c3e50"
SIG_COLOR = "#e74c3c"
NONSIG_COLOR = "#95a5a6"


def _finish(fig: plt.Figure, save_path: Optional[str], dpi: int = 300) -> plt.Figure:
    fig.tight_layout()
    if save_path:
        fig.savefig(save_path, dpi=dpi, bbox_inches="tight", facecolor="white")
        logger.info("Figure saved to: %s", save_path)
    return fig


def _style(ax: plt.Axes, title: str, xlabel: str, ylabel: str) -> None:
    ax.set_xlabel(xlabel, fontsize=13, fontweight="bold", color=TEXT_COLOR)
    ax.set_ylabel(ylabel, fontsize=13, fontweight="bold", color=TEXT_COLOR)
    ax.set_title(title, fontsize=15, fontweight="bold", color=TEXT_COLOR, pad=20)
    for spine in ax.spines.values():
        spine.set_color(TEXT_COLOR)
        spine.set_linewidth(1.5)
    ax.grid(True, alpha=0.2, linestyle=":", linewidth=0.8)
    ax.set_axisbelow(True)
    ax.tick_params(colors=TEXT_COLOR, labelsize=11, width=1.5, length=6)


def _require(df: pd.DataFrame, *columns: str) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise SchemaError(f"Plot needs column(s) {missing}; available: {list(df.columns)}")


# =============================================================================
# Experiment-level plots
# =============================================================================

def library_size_plot(
    se: Any,
    color_by: Optional[str] = None,
    assay: str = "counts",
    figsize: tuple = (8, 5),
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Bar chart of total counts per sample."""
    coldata = column_data_frame(se)
    df = pd.DataFrame({
        "sample": coldata.index.to_numpy(),
        "lib_size": assay_array(se, assay).sum(axis=0),
    })
    if color_by is not None:
        df[color_by] = coldata[color_by].to_numpy()
    fig, ax = plt.subplots(figsize=figsize)
    sns.barplot(data=df, x="sample", y="lib_size", hue=color_by, dodge=False, ax=ax)
    ax.tick_params(axis="x", rotation=45)
    _style(ax, "Library sizes", "Sample", "Total counts")
    return _finish(fig, save_path)


def density_plot(
    se: Any,
    assays: Sequence[str] = ("counts",),
    color_by: str = "sample",
    figsize: tuple = (10, 5),
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Density of log10(count + 1) per sample, one panel per assay."""
    long = pivot_longer(se, assays=list(assays), include_row_data=False)
    fig, axes = plt.subplots(1, len(assays), figsize=figsize, squeeze=False)
    for ax, name in zip(axes[0], assays):
        long[f"log_{name}"] = np.log10(long[name] + 1.0)
        sns.kdeplot(data=long, x=f"log_{name}", hue=color_by, ax=ax, warn_singular=False)
        _style(ax, name, "log10(count + 1)", "Density")
    return _finish(fig, save_path)


def box_plot(
    se: Any,
    assay: str = "counts",
    color_by: Optional[str] = None,
    figsize: tuple = (10, 5),
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Box plot of log10(count + 1) per sample."""
    long = pivot_longer(se, assays=[assay], include_row_data=False)
    long["log_value"] = np.log10(long[assay] + 1.0)
    fig, ax = plt.subplots(figsize=figsize)
    sns.boxplot(data=long, x="sample", y="log_value", hue=color_by, dodge=False, ax=ax)
    ax.tick_params(axis="x", rotation=45)
    _style(ax, f"{assay} per sample", "Sample", "log10(count + 1)")
    return _finish(fig, save_path)


def mds_plot(
    se: Any,
    color_by: Optional[str] = None,
    shape_by: Optional[str] = None,
    dims: Sequence[str] = ("Dim1", "Dim2"),
    figsize: tuple = (7, 6),
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Scatter of samples in reduced dimensions (see reduce_dimensions)."""
    coldata = column_data_frame(se)
    _require(coldata, *dims)
    fig, ax = plt.subplots(figsize=figsize)
    sns.scatterplot(data=coldata, x=dims[0], y=dims[1], hue=color_by, style=shape_by, s=120, ax=ax)
    variance = (se.metadata or {}).get("reduced_dimensions", {}).get("variance_explained", [])
    labels = [
        f"{d} ({variance[i]:.0%})" if i < len(variance) else d
        for i, d in enumerate(dims[:2])
    ]
    _style(ax, "Sample ordination", labels[0], labels[1])
    return _finish(fig, save_path)


def heatmap(
    se: Any,
    features: Sequence[str],
    assay: str = "counts",
    annotate_by: Optional[str] = None,
    figsize: tuple = (8, 10),
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Heatmap of row-centred log2-CPM for the given features."""
    names = [str(f) for f in se.row_names]
    idx = [names.index(f) for f in features if f in names]
    if not idx:
        raise SchemaError("None of the requested features are in the experiment")
    values = cpm(assay_array(se, assay), log=True)[idx]
    values = values - values.mean(axis=1, keepdims=True)
    coldata = column_data_frame(se)
    columns = list(coldata.index)
    if annotate_by is not None:
        columns = [f"{s}\n{v}" for s, v in zip(coldata.index, coldata[annotate_by])]
    df = pd.DataFrame(values, index=[names[i] for i in idx], columns=columns)
    fig, ax = plt.subplots(figsize=figsize)
    sns.heatmap(df, cmap="RdBu_r", center=0.0, ax=ax, cbar_kws={"label": "centred log2-CPM"})
    ax.set_title("Top features", fontsize=15, fontweight="bold", color=TEXT_COLOR)
    return _finish(fig, save_path)


def strip_plot(
    se: Any,
    feature: str,
    group_by: str,
    assay: str = "counts",
    figsize: tuple = (6, 5),
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Counts of one feature by group, one point per sample."""
    long = pivot_longer(se, assays=[assay], include_row_data=False)
    _require(long, group_by)
    sub = long[long["feature"] == feature]
    if sub.empty:
        raise SchemaError(f"Feature '{feature}' not found")
    sub = sub.assign(log_value=np.log10(sub[assay] + 1.0))
    fig, ax = plt.subplots(figsize=figsize)
    sns.stripplot(data=sub, x=group_by, y="log_value", hue=group_by, size=9, jitter=0.15, ax=ax, legend=False)
    _style(ax, feature, group_by, "log10(count + 1)")
    return _finish(fig, save_path)


# =============================================================================
# Result plots
# =============================================================================

def ma_plot(
    results: pd.DataFrame,
    fdr_threshold: float = 0.05,
    figsize: tuple = (9, 7),
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Log fold-change against average log-CPM of tested features."""
    _require(results, "log_cpm", "log_fc", "fdr")
    df = results[results["p_value"].notna()] if "p_value" in results.columns else results
    sig = (df["fdr"] < fdr_threshold).to_numpy()
    fig, ax = plt.subplots(figsize=figsize)
    ax.scatter(df["log_cpm"][~sig], df["log_fc"][~sig], s=12, color=NONSIG_COLOR, alpha=0.5, label="Not significant")
    ax.scatter(df["log_cpm"][sig], df["log_fc"][sig], s=16, color=SIG_COLOR, alpha=0.8, label=f"FDR < {fdr_threshold}")
    ax.axhline(0.0, color="#34495e", linestyle="--", linewidth=1.2)
    ax.legend(loc="upper right")
    _style(ax, "MA plot", "Average log2-CPM", "log2 fold change")
    return _finish(fig, save_path)


def volcano_plot(
    results: pd.DataFrame,
    logfc_col: str = "log_fc",
    fdr_col: str = "fdr",
    fdr_threshold: float = 0.05,
    logfc_threshold: float = 1.0,
    figsize: tuple = (10, 8),
    title: str = "Volcano Plot",
    xlabel: str = "log₂(Fold Change)",
    ylabel: str = "-log₁₀(Adjusted p-value)",
    save_path: Optional[str] = None,
    **kwargs
) -> plt.Figure:
    """
    Volcano plot of a differential result table.

    Features without an adjusted p-value (not tested or invalid) are left out.

    Args:
        results: Result table from test_differential_abundance.
        logfc_col: Column name for log fold change.
        fdr_col: Column name for adjusted p-value.
        fdr_threshold: FDR significance threshold.
        logfc_threshold: Log fold change threshold for highlighting.
        **kwargs: point_size, sig_color, nonsig_color, alpha, dpi.
    """
    point_size = kwargs.get("point_size", 50)
    sig_color = kwargs.get("sig_color", SIG_COLOR)
    nonsig_color = kwargs.get("nonsig_color", NONSIG_COLOR)
    alpha = kwargs.get("alpha", 0.7)
    dpi = kwargs.get("dpi", 300)

    _require(results, logfc_col, fdr_col)
    df = results[results[fdr_col].notna()].copy()
    df["-log10(FDR)"] = -np.log10(df[fdr_col].astype(float))

    sig_mask = (df[fdr_col] < fdr_threshold) & (np.abs(df[logfc_col]) > logfc_threshold)

    fig, ax = plt.subplots(figsize=figsize, dpi=100)

    non_sig = df[~sig_mask]
    ax.scatter(
        non_sig[logfc_col], non_sig["-log10(FDR)"],
        s=point_size, color=nonsig_color, alpha=alpha * 0.5,
        edgecolors="none", linewidth=0.5, label="Not significant", zorder=1,
    )
    sig = df[sig_mask]
    ax.scatter(
        sig[logfc_col], sig["-log10(FDR)"],
        s=point_size * 1.3, color=sig_color, alpha=alpha,
        edgecolors="white", linewidth=1,
        label=f"FDR < {fdr_threshold}, |logFC| > {logfc_threshold}", zorder=2,
    )

    ax.axvline(-logfc_threshold, color="#34495e", linestyle="--", linewidth=1.5, alpha=0.6, zorder=0)
    ax.axvline(logfc_threshold, color="#34495e", linestyle="--", linewidth=1.5, alpha=0.6, zorder=0)
    ax.axhline(-np.log10(fdr_threshold), color="#34495e", linestyle="--", linewidth=1.5, alpha=0.6, zorder=0)

    _style(ax, title, xlabel, ylabel)
    ax.legend(loc="upper right", frameon=True, fancybox=True, shadow=True, fontsize=10, framealpha=0.95)

    n_sig = int(sig_mask.sum())
    stats_text = f"Significant: {n_sig}/{len(df)}\n"
    stats_text += f"Up-regulated: {int((sig_mask & (df[logfc_col] > 0)).sum())}\n"
    stats_text += f"Down-regulated: {int((sig_mask & (df[logfc_col] < 0)).sum())}"
    ax.text(
        0.02, 0.98, stats_text,
        transform=ax.transAxes, fontsize=10, verticalalignment="top",
        bbox=dict(boxstyle="round", facecolor="white", alpha=0.85, edgecolor=TEXT_COLOR, linewidth=1.5),
        family="monospace", color=TEXT_COLOR,
    )

    return _finish(fig, save_path, dpi=dpi)
