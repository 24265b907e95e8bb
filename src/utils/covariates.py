# covariates.py
# Time covariates shared by the training table and the prediction grid.
# -------------------------------------------------------------------
# Both paths must call add_time_covariates(); re-deriving these columns
# anywhere else lets training and prediction drift apart silently.
# -------------------------------------------------------------------

import numpy as np
import pandas as pd

TIME_COLUMNS = ("years", "post", "years_since")


def years_since_origin(cohort, origin_year: int) -> np.ndarray:
    return np.asarray(cohort, dtype=float) - float(origin_year)


def post_threshold(cohort, threshold_year: int) -> np.ndarray:
    """1.0 from the threshold cohort onwards, 0.0 before."""
    return (np.asarray(cohort) >= threshold_year).astype(float)


def years_since_threshold(cohort, threshold_year: int) -> np.ndarray:
    """0 up to the threshold cohort, then 1, 2, ... per cohort after it."""
    return np.maximum(np.asarray(cohort, dtype=float) - float(threshold_year), 0.0)


def add_time_covariates(df: pd.DataFrame, settings) -> pd.DataFrame:
    """Return a copy of ``df`` with years / post / years_since from ``cohort``."""
    if "cohort" not in df.columns:
        raise KeyError("add_time_covariates needs a 'cohort' column")
    cohort = df["cohort"].to_numpy()
    return df.assign(
        years=years_since_origin(cohort, settings.origin_year),
        post=post_threshold(cohort, settings.threshold_year),
        years_since=years_since_threshold(cohort, settings.threshold_year),
    )
