"""Tests for the prediction grid, the observed join and the pipeline script."""

from __future__ import annotations

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest

from src.analysis.fit_models import MODEL_SPECS, fit_model
from src.analysis.interpret import post_threshold_effects
from src.analysis.predict import (
    build_prediction_grid,
    fit_diagnostics,
    join_observed,
    predict_log_rate,
)
from src.data_processing.aggregate_lexis import build_rate_table
from src.errors import MissingTriangleError
from src.scripts.run_imr_models import interpret, main
from src.utils.covariates import years_since_threshold
from src.visualization.fig_imr_trends import plot_observed_vs_predicted, plot_rate_ratios


@pytest.fixture
def rates(lexis, settings):
    return build_rate_table(lexis, settings)


def test_grid_is_cartesian_product(settings) -> None:
    grid = build_prediction_grid(range(2000, 2021), settings)
    assert len(grid) == 21 * 2 * 3
    assert not grid.duplicated(["code", "cohort", "sex"]).any()
    assert set(grid["sex"]) == {"female", "male"}


def test_grid_and_training_covariates_agree(rates, settings) -> None:
    grid = build_prediction_grid(range(1990, 2031), settings)
    both = grid.merge(rates, on=["code", "cohort", "sex"], suffixes=("_grid", "_train"))

    assert len(both) == len(rates)
    for col in ["years", "post", "years_since"]:
        assert (both[f"{col}_grid"].to_numpy() == both[f"{col}_train"].to_numpy()).all()


def test_years_since_threshold_values() -> None:
    vals = years_since_threshold([2010, 2011, 2012, 2013, 2016], 2012)
    assert list(vals) == [0.0, 0.0, 0.0, 1.0, 4.0]


def test_predictions_match_fitted_values(rates, settings) -> None:
    fit = fit_model(rates, MODEL_SPECS["country_post"], settings)
    grid = build_prediction_grid(sorted(rates["cohort"].unique()), settings)
    joined = join_observed(predict_log_rate(fit, grid), rates)

    assert len(joined) == len(grid)
    assert joined["rate"].notna().all()
    assert np.allclose(joined["pred_rate"], np.exp(joined["pred_log_rate"]))

    fitted = rates.assign(fitted=fit.results.fittedvalues.to_numpy())
    check = joined.merge(fitted[["code", "cohort", "sex", "fitted"]], on=["code", "cohort", "sex"])
    assert np.allclose(check["pred_log_rate"], check["fitted"])


def test_join_leaves_unobserved_cohorts_empty(rates, settings) -> None:
    fit = fit_model(rates, MODEL_SPECS["post"], settings)
    grid = build_prediction_grid(range(2019, 2023), settings)
    joined = join_observed(predict_log_rate(fit, grid), rates)
    assert joined["rate"].isna().all()
    assert joined["pred_rate"].notna().all()


def test_fit_diagnostics(rates, settings) -> None:
    fit = fit_model(rates, MODEL_SPECS["country_post"], settings)
    diag = fit_diagnostics(fit, rates)
    assert diag["nobs"] == len(rates)
    assert 0.0 < diag["r2"] <= 1.0
    # data were generated with log-scale noise SD 0.04
    assert diag["resid_sd"] < 0.1
    assert diag["mae_log"] <= diag["max_abs_resid"]


def test_figures_render(rates, settings) -> None:
    fit = fit_model(rates, MODEL_SPECS["country_post"], settings)
    grid = build_prediction_grid(range(2000, 2021), settings)
    joined = join_observed(predict_log_rate(fit, grid), rates)

    fig = plot_observed_vs_predicted(joined, settings, ncols=2, save=False)
    assert len([ax for ax in fig.axes if ax.get_visible()]) == 3
    plt.close(fig)

    fig = plot_rate_ratios(post_threshold_effects(fit, settings), save=False)
    plt.close(fig)


def test_interpret_collects_all_effects(rates, settings) -> None:
    fit = fit_model(rates, MODEL_SPECS["country_post"], settings)
    eff = interpret(fit, settings)
    assert set(eff["effect"]) == {"country", "sex", "post"}
    assert (eff["model"] == "country_post").all()


def test_pipeline_script_runs(tmp_path, lexis) -> None:
    path = tmp_path / "lexis.csv"
    lexis.to_csv(path, index=False)
    rc = main(["--data", str(path), "--countries", "SWE", "NOR", "DNK",
               "--start-year", "2000", "--no-plot", "--no-tables"])
    assert rc == 0


def test_pipeline_script_writes_tables_and_figures(tmp_path, lexis) -> None:
    # last snapshot year: the final cohort only has its lower triangle
    truncated = lexis[~((lexis["cohort"] == 2018) & (lexis["tri_type"] == "upper"))]
    path = tmp_path / "lexis.csv"
    truncated.to_csv(path, index=False)
    out, figs = tmp_path / "results", tmp_path / "figures"
    args = ["--data", str(path), "--countries", "SWE", "NOR", "DNK", "--start-year", "2000",
            "--out", str(out), "--figures", str(figs)]

    with pytest.raises(MissingTriangleError):
        main(args)

    assert main(args + ["--drop-incomplete"]) == 0
    tables = {p.name for p in (out / "tables").glob("*.csv")}
    assert tables == {"table_model_ic.csv", "table_model_ftests.csv",
                      "table_model_coefficients.csv", "table_rate_ratios.csv"}
    assert (out / "imr_predictions_grid.csv").exists()
    assert (figs / "fig_imr_observed_vs_predicted.png").exists()
    assert (figs / "fig_imr_post_threshold_ratios.pdf").exists()

    rates = pd.read_csv(out / "infant_rates_by_cohort.csv")
    assert rates["cohort"].max() == 2017
    effects = pd.read_csv(out / "tables" / "table_rate_ratios.csv")
    assert set(effects.loc[effects["effect"] == "post", "level"]) == {"SWE", "NOR", "DNK"}
