"""Shared fixtures: small deterministic HMD-style Lexis tables."""

from __future__ import annotations

from pathlib import Path
import sys

import numpy as np
import pandas as pd
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.config import ModelSettings


COUNTRY_SHIFT = {"SWE": 0.0, "NOR": 0.08, "DNK": 0.25}
POST_SHIFT = {"SWE": 0.02, "NOR": 0.04, "DNK": -0.05}


def make_lexis(codes=("SWE", "NOR", "DNK"), cohorts=range(2004, 2019),
               sexes=("female", "male"), exposure=60_000, seed=11,
               threshold=2012) -> pd.DataFrame:
    """Two triangle rows per (code, cohort, sex) with integer counts."""
    rng = np.random.default_rng(seed)
    rows = []
    for code in codes:
        for cohort in cohorts:
            for sex in sexes:
                log_rate = (-5.2 - 0.035 * (cohort - 2000)
                            + (0.18 if sex == "male" else 0.0)
                            + COUNTRY_SHIFT.get(code, 0.0)
                            + (POST_SHIFT.get(code, 0.0) if cohort >= threshold else 0.0)
                            + rng.normal(0.0, 0.04))
                rate = float(np.exp(log_rate))
                for year, share in [(cohort, 0.55), (cohort + 1, 0.45)]:
                    exp_tri = int(exposure * share)
                    rows.append({
                        "code": code, "cohort": cohort, "year": year, "sex": sex,
                        "tri_type": "lower" if year == cohort else "upper",
                        "deaths": int(round(rate * exp_tri)),
                        "exposures": exp_tri,
                    })
    return pd.DataFrame(rows)


@pytest.fixture
def settings() -> ModelSettings:
    return ModelSettings(
        reference_country="SWE",
        country_codes=("SWE", "NOR", "DNK"),
        threshold_year=2012,
        start_year=2000,
        origin_year=2000,
    )


@pytest.fixture
def lexis() -> pd.DataFrame:
    return make_lexis()
