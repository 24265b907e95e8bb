# predict.py
# ---------------------------------------------------------------------------
# Predictions on a synthetic (cohort × sex × country) grid and the join back
# onto observed rates for plotting and diagnostics.
# ---------------------------------------------------------------------------

import itertools

import numpy as np
import pandas as pd

from src.data_processing.ingest_lexis import KEY_COLUMNS
from src.utils.covariates import add_time_covariates


def build_prediction_grid(cohorts, settings, sexes=None, codes=None) -> pd.DataFrame:
    """Cartesian product of cohorts, sexes and countries with time covariates."""
    sexes = settings.sexes if sexes is None else sexes
    codes = settings.country_codes if codes is None else codes
    grid = pd.DataFrame(
        list(itertools.product(codes, [int(c) for c in cohorts], sexes)),
        columns=KEY_COLUMNS,
    )
    return add_time_covariates(grid, settings)


def predict_log_rate(fit, grid: pd.DataFrame) -> pd.DataFrame:
    """Evaluate the fitted linear predictor on ``grid``."""
    pred = fit.predict(grid)
    return grid.assign(model=fit.name, pred_log_rate=pred, pred_rate=np.exp(pred))


def join_observed(pred: pd.DataFrame, observed: pd.DataFrame) -> pd.DataFrame:
    """Left join observed rate/log_rate onto predictions by (code, cohort, sex)."""
    obs = observed.loc[:, KEY_COLUMNS + ["deaths", "exposures", "rate", "log_rate"]]
    dup = obs.duplicated(KEY_COLUMNS)
    if dup.any():
        raise ValueError(f"Observed table has {int(dup.sum())} duplicated keys")
    return pred.merge(obs, on=KEY_COLUMNS, how="left", validate="many_to_one")


def fit_diagnostics(fit, rates: pd.DataFrame) -> dict:
    """In-sample fit summary on the log scale."""
    resid = rates["log_rate"].to_numpy() - fit.predict(rates)
    return {
        "model": fit.name,
        "nobs": fit.nobs,
        "r2": fit.rsquared,
        "resid_sd": float(np.sqrt(fit.ssr / fit.df_resid)),
        "mae_log": float(np.mean(np.abs(resid))),
        "max_abs_resid": float(np.max(np.abs(resid))),
    }
