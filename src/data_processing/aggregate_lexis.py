# aggregate_lexis.py
# ---------------------------------------------------------------------------
# Collapse the lower + upper Lexis triangles of each (code, cohort, sex) into
# one cohort record, then derive the infant mortality rate and its log.
# Every function returns a new frame; inputs are never modified.
# ---------------------------------------------------------------------------

import numpy as np
import pandas as pd

from src.data_processing.ingest_lexis import KEY_COLUMNS, select_countries
from src.errors import DivideByZeroError, DomainError, MissingTriangleError
from src.utils.covariates import add_time_covariates


def _incomplete_keys(df: pd.DataFrame) -> pd.DataFrame:
    """Triangle counts for the keys without exactly one lower and one upper row."""
    counts = (df.groupby(KEY_COLUMNS + ["tri_type"]).size()
                .unstack("tri_type", fill_value=0)
                .reindex(columns=["lower", "upper"], fill_value=0))
    return counts[(counts["lower"] != 1) | (counts["upper"] != 1)]


def _first_key(frame: pd.DataFrame):
    row = frame.iloc[0]
    return (row["code"], int(row["cohort"]), row["sex"])


def aggregate_triangles(df: pd.DataFrame) -> pd.DataFrame:
    """
    Sum deaths and exposures over both triangles of each key.

    Raises MissingTriangleError for the first key that does not have exactly
    one lower and one upper row.
    """
    bad = _incomplete_keys(df)
    if len(bad):
        code, cohort, sex = bad.index[0]
        n_low, n_up = bad.iloc[0]["lower"], bad.iloc[0]["upper"]
        if n_low == 0 or n_up == 0:
            which = "lower" if n_low == 0 else "upper"
            msg = f"Missing {which} triangle ({len(bad)} incomplete keys in total)"
        else:
            msg = f"Duplicate triangles: lower={n_low}, upper={n_up}"
        raise MissingTriangleError(msg, key=(code, int(cohort), sex))

    agg = (df.groupby(KEY_COLUMNS, as_index=False)
             .agg(deaths=("deaths", "sum"), exposures=("exposures", "sum")))
    return agg.sort_values(KEY_COLUMNS).reset_index(drop=True)


def compute_rates(agg: pd.DataFrame) -> pd.DataFrame:
    """rate = deaths / exposures; zero exposure raises DivideByZeroError."""
    zero = agg[agg["exposures"] <= 0]
    if len(zero):
        raise DivideByZeroError(
            f"Non-positive exposure ({zero.iloc[0]['exposures']}) in {len(zero)} records",
            key=_first_key(zero))
    return agg.assign(rate=agg["deaths"].to_numpy(dtype=float) / agg["exposures"].to_numpy(dtype=float))


def add_log_rate(rates: pd.DataFrame) -> pd.DataFrame:
    """log(rate); a zero-death cohort (rate 0) raises DomainError."""
    nonpos = rates[~(rates["rate"] > 0)]
    if len(nonpos):
        raise DomainError(
            f"Cannot take log of rate {nonpos.iloc[0]['rate']} ({len(nonpos)} records)",
            key=_first_key(nonpos))
    return rates.assign(log_rate=np.log(rates["rate"].to_numpy(dtype=float)))


def drop_incomplete_triangles(df: pd.DataFrame):
    """
    Remove every key that lacks exactly one lower and one upper triangle.

    The last year of an HMD snapshot leaves its cohort with only a lower
    triangle. Returns the complete rows and the list of dropped keys.
    """
    bad = _incomplete_keys(df)
    dropped = [(code, int(cohort), sex) for code, cohort, sex in bad.index]
    if not dropped:
        return df.copy(), dropped

    keys = pd.MultiIndex.from_frame(df[KEY_COLUMNS])
    keep = ~keys.isin(bad.index)
    shown = ", ".join(f"{c}/{y}/{s}" for c, y, s in dropped[:6])
    more = f" (+{len(dropped) - 6} more)" if len(dropped) > 6 else ""
    print(f"[warn] Dropping {len(dropped)} incomplete triangle keys: {shown}{more}")
    return df.loc[keep].reset_index(drop=True), dropped


def build_rate_table(lexis: pd.DataFrame, settings, drop_incomplete: bool = False) -> pd.DataFrame:
    """
    Lexis rows → filtered → aggregated → rates → log rate → time covariates.

    With drop_incomplete=True, keys missing a triangle are dropped (and
    listed) before aggregation; otherwise they raise MissingTriangleError.
    """
    selected = select_countries(lexis, settings.country_codes, settings.start_year)
    selected = selected[selected["sex"].isin(settings.sexes)]
    if drop_incomplete:
        selected, _ = drop_incomplete_triangles(selected)
    rates = add_log_rate(compute_rates(aggregate_triangles(selected)))
    rates = add_time_covariates(rates, settings)
    print(f"[info] Rate table: {len(rates):,} records, cohorts "
          f"{rates['cohort'].min()}–{rates['cohort'].max()}")
    return rates
