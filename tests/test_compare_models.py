"""Tests for nested F-tests and information-criterion comparison."""

from __future__ import annotations

from types import SimpleNamespace

import numpy as np
import pandas as pd
import pytest

from src.analysis.compare_models import (
    f_test,
    information_criteria,
    is_nested,
    penalized_scores,
    sequential_f_tests,
)
from src.analysis.fit_models import MODEL_SPECS, fit_all, fit_model
from src.data_processing.aggregate_lexis import build_rate_table
from src.errors import NotNestedError
from src.tables.table_model_comparison import write_tables


@pytest.fixture
def fits(lexis, settings):
    return fit_all(build_rate_table(lexis, settings), settings)


def test_is_nested(fits) -> None:
    assert is_nested(fits["time"], fits["sex"])
    assert is_nested(fits["post"], fits["country_trend"])
    assert not is_nested(fits["sex"], fits["time"])
    assert not is_nested(fits["country_post"], fits["country_trend"])
    assert not is_nested(fits["sex"], fits["sex"])


def test_f_test_matches_statsmodels(fits) -> None:
    base, ext = fits["time"], fits["sex"]
    ours = f_test(base, ext)
    F, p, df_diff = ext.results.compare_f_test(base.results)

    assert ours.F == pytest.approx(F, rel=1e-9)
    assert ours.p_value == pytest.approx(p, rel=1e-6, abs=1e-300)
    assert ours.df_num == df_diff
    assert ours.base == "time" and ours.extended == "sex"


def test_sex_term_is_significant(fits) -> None:
    assert f_test(fits["time"], fits["sex"]).significant


def test_f_test_rejects_non_nested(fits) -> None:
    with pytest.raises(NotNestedError):
        f_test(fits["country_post"], fits["country_trend"])
    with pytest.raises(NotNestedError):
        f_test(fits["sex"], fits["time"])


def test_sequential_f_tests_skips_to_nested_base(fits) -> None:
    tab = sequential_f_tests(fits)
    pairs = list(zip(tab["base"], tab["extended"]))
    assert pairs == [
        ("time", "sex"),
        ("sex", "country"),
        ("country", "post"),
        ("post", "country_post"),
        ("post", "country_trend"),
    ]
    assert (tab["p_value"].between(0, 1)).all()


def test_penalized_scores_match_statsmodels(fits) -> None:
    for fit in fits.values():
        sc = penalized_scores(fit)
        assert sc["aic"] == pytest.approx(fit.aic)
        assert sc["bic"] == pytest.approx(fit.bic)


def test_bic_penalty_exceeds_aic_penalty(fits) -> None:
    fit = fits["country_post"]
    sc = penalized_scores(fit)
    assert sc["bic"] - sc["aic"] == pytest.approx((np.log(fit.nobs) - 2.0) * fit.n_params)


def test_information_criteria_report(fits) -> None:
    report = information_criteria(fits)
    tab = report.table

    assert list(tab["model"]) == list(fits)
    assert tab["delta_aic"].min() == 0.0
    assert tab["delta_bic"].min() == 0.0
    assert report.best_aic == tab.loc[tab["aic"].idxmin(), "model"]
    assert report.best_bic == tab.loc[tab["bic"].idxmin(), "model"]
    assert report.best_aic in report.near_ties_aic
    assert report.criteria_agree == (report.best_aic == report.best_bic)
    assert "AIC prefers" in report.describe()


def test_near_ties_are_reported_not_resolved(fits) -> None:
    # a huge tolerance makes every model a near tie
    report = information_criteria(fits, tolerance=1e9)
    assert report.near_ties_aic == list(fits)
    assert report.needs_judgement
    assert "choose one explicitly" in report.describe()


def test_information_criteria_needs_models() -> None:
    with pytest.raises(ValueError):
        information_criteria({})


def test_write_tables(tmp_path, fits) -> None:
    report = information_criteria(fits)
    ftests = sequential_f_tests(fits)
    paths = {name: tmp_path / f"{name}.csv" for name in ["ic", "ftests", "coefs", "effects"]}

    written = write_tables(report, ftests, fits, effects=None,
                           path_ic=paths["ic"], path_ftests=paths["ftests"],
                           path_coefs=paths["coefs"], path_effects=paths["effects"])

    assert written == [paths["ic"], paths["ftests"], paths["coefs"]]
    assert not paths["effects"].exists()
    coefs = pd.read_csv(paths["coefs"])
    assert set(coefs["model"]) == set(fits)
    assert len(coefs) == sum(f.n_params for f in fits.values())


def test_information_criteria_rejects_different_samples(lexis, settings, fits) -> None:
    rates = build_rate_table(lexis, settings)
    short = fit_model(rates[rates["cohort"] < 2016], MODEL_SPECS["sex"], settings)
    mixed = {"time": fits["time"], "sex": short}
    with pytest.raises(NotNestedError, match="different rows"):
        information_criteria(mixed)


def _stub_fit(name, terms, ssr, df_resid, nobs=40):
    spec = SimpleNamespace(term_set=frozenset(terms))
    return SimpleNamespace(name=name, spec=spec, ssr=ssr, df_resid=df_resid, nobs=nobs)


def test_f_test_exact_fit_reports_infinite_F() -> None:
    base = _stub_fit("time", {"years"}, ssr=2.5, df_resid=38)
    ext = _stub_fit("sex", {"years", "sex"}, ssr=0.0, df_resid=37)
    res = f_test(base, ext)
    assert np.isinf(res.F)
    assert res.p_value == 0.0
    assert res.significant


def test_f_test_both_exact_fits_not_significant() -> None:
    base = _stub_fit("time", {"years"}, ssr=0.0, df_resid=38)
    ext = _stub_fit("sex", {"years", "sex"}, ssr=0.0, df_resid=37)
    res = f_test(base, ext)
    assert np.isnan(res.F)
    assert not res.significant
