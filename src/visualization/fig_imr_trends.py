# fig_imr_trends.py
# Observed vs predicted infant mortality by cohort, one panel per country,
# plus a dot plot of post-threshold rate ratios.

import math

import matplotlib.pyplot as plt
import numpy as np
import seaborn as sns
from matplotlib.ticker import FuncFormatter

from src.config import FIG_NAME_RATIOS, FIG_NAME_TRENDS, save_figure, setup_publication_style

SEX_COLORS = {"female": "#D55E00", "male": "#0072B2"}


def _style():
    setup_publication_style()
    sns.set_style("whitegrid")


def plot_observed_vs_predicted(joined, settings, ncols: int = 4, save: bool = True, directory=None):
    """
    Log-scale rate per 1,000 by cohort. Points are observed rates, lines are
    model predictions; the dashed line marks the threshold cohort.
    """
    _style()
    codes = [c for c in settings.country_codes if c in set(joined["code"])]
    if not codes:
        raise ValueError("Nothing to plot: no configured countries in the joined table.")
    nrows = math.ceil(len(codes) / ncols)
    fig, axes = plt.subplots(nrows, ncols, figsize=(3.0 * ncols, 2.4 * nrows),
                             sharex=True, sharey=True, squeeze=False)

    for ax, code in zip(axes.flat, codes):
        g = joined[joined["code"] == code]
        for sex, gs in g.groupby("sex"):
            gs = gs.sort_values("cohort")
            color = SEX_COLORS.get(sex, "#333333")
            obs = gs.dropna(subset=["rate"])
            ax.scatter(obs["cohort"], obs["rate"] * 1_000, s=6, color=color, alpha=0.6)
            ax.plot(gs["cohort"], gs["pred_rate"] * 1_000, lw=1.4, color=color, label=sex)
        ax.axvline(settings.threshold_year, color="k", lw=0.8, ls="--", alpha=0.5)
        ax.set_yscale("log")
        ax.yaxis.set_major_formatter(FuncFormatter(lambda y, p: f"{y:g}"))
        ax.set_title(code)

    for ax in list(axes.flat)[len(codes):]:
        ax.set_visible(False)

    model = joined["model"].iloc[0] if "model" in joined.columns else ""
    fig.supxlabel("Birth cohort")
    fig.supylabel("Infant deaths per 1,000 exposure")
    fig.suptitle(f"Infant mortality: observed vs predicted ({model})")
    handles, labels = axes.flat[0].get_legend_handles_labels()
    if handles:
        fig.legend(handles, labels, loc="lower right", frameon=False)
    fig.tight_layout()

    if save:
        save_figure(fig, FIG_NAME_TRENDS, directory=directory)
    return fig


def plot_rate_ratios(effects, save: bool = True, directory=None):
    """Post-threshold rate ratio per country; 1.0 means no change."""
    _style()
    eff = effects.sort_values("rate_ratio")
    fig, ax = plt.subplots(figsize=(4.5, 0.3 * len(eff) + 1.0))
    colors = np.where(eff["is_reference"], "#D55E00", "#0072B2")
    ax.scatter(eff["rate_ratio"], eff["code"], color=colors, zorder=3)
    ax.axvline(1.0, color="k", lw=0.8, alpha=0.6)
    ax.set_xlabel("Rate ratio after threshold")
    ax.set_ylabel("")
    model = eff["model"].iloc[0] if len(eff) else ""
    ax.set_title(f"Post-threshold effect by country ({model})")
    fig.tight_layout()

    if save:
        save_figure(fig, FIG_NAME_RATIOS, directory=directory)
    return fig
