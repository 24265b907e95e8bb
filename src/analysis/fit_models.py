# fit_models.py
# ---------------------------------------------------------------------------
# Nested log-linear OLS models for infant mortality:
#     log(rate) ~ years [+ sex] [+ country] [+ post] [+ country:post | country trend]
# Country and sex enter with treatment coding against the configured
# reference levels, so every contrast is a rate ratio vs the reference.
# ---------------------------------------------------------------------------

from collections import OrderedDict
from dataclasses import dataclass
from typing import Tuple

import numpy as np
import pandas as pd
import patsy
import statsmodels.formula.api as smf

from src.errors import InsufficientDataError

RESPONSE = "log_rate"
COUNTRY_COLUMN = "code"
SEX_COLUMN = "sex"


def country_factor(settings) -> str:
    return f"C({COUNTRY_COLUMN}, Treatment(reference='{settings.reference_country}'))"


def sex_factor(settings) -> str:
    return f"C({SEX_COLUMN}, Treatment(reference='{settings.reference_sex}'))"


def _render_term(term: str, settings) -> str:
    names = {
        "country": country_factor(settings),
        "sex": sex_factor(settings),
    }
    return ":".join(names.get(part, part) for part in term.split(":"))


@dataclass(frozen=True)
class ModelSpec:
    """Named, ordered set of right-hand-side terms."""
    name: str
    terms: Tuple[str, ...]
    description: str = ""

    @property
    def term_set(self) -> frozenset:
        return frozenset(self.terms)

    def uses(self, factor: str) -> bool:
        return any(factor in t.split(":") for t in self.terms)

    def formula(self, settings) -> str:
        rhs = " + ".join(_render_term(t, settings) for t in self.terms)
        return f"{RESPONSE} ~ {rhs}"


_BASE = ("years", "sex", "country", "post")

MODEL_SPECS = OrderedDict(
    (spec.name, spec) for spec in [
        ModelSpec("time", _BASE[:1], "log-linear decline in cohort time"),
        ModelSpec("sex", _BASE[:2], "+ sex"),
        ModelSpec("country", _BASE[:3], "+ country"),
        ModelSpec("post", _BASE, "+ post-threshold level shift"),
        ModelSpec("country_post", _BASE + ("country:post",),
                  "+ country-specific post-threshold shift"),
        ModelSpec("country_trend", _BASE + ("years_since", "country:years_since"),
                  "post-threshold slope by country instead of level shift"),
    ]
)


@dataclass
class FittedModel:
    spec: ModelSpec
    formula: str
    results: object   # statsmodels RegressionResultsWrapper

    @property
    def name(self):
        return self.spec.name

    @property
    def params(self) -> pd.Series:
        return self.results.params

    @property
    def bse(self) -> pd.Series:
        return self.results.bse

    @property
    def ssr(self) -> float:
        return float(self.results.ssr)

    @property
    def llf(self) -> float:
        return float(self.results.llf)

    @property
    def df_resid(self) -> float:
        return float(self.results.df_resid)

    @property
    def nobs(self) -> int:
        return int(self.results.nobs)

    @property
    def n_params(self) -> int:
        return int(len(self.results.params))

    @property
    def aic(self) -> float:
        return float(self.results.aic)

    @property
    def bic(self) -> float:
        return float(self.results.bic)

    @property
    def rsquared(self) -> float:
        return float(self.results.rsquared)

    def predict(self, frame: pd.DataFrame) -> np.ndarray:
        return np.asarray(self.results.predict(frame), dtype=float)

    def summary_frame(self) -> pd.DataFrame:
        """Coefficients with SE, t, p and exp() as a rate ratio with 95% CI."""
        ci = self.results.conf_int()
        out = pd.DataFrame({
            "model": self.name,
            "term": self.params.index,
            "coef": self.params.to_numpy(),
            "se": self.bse.to_numpy(),
            "t": self.results.tvalues.to_numpy(),
            "p": self.results.pvalues.to_numpy(),
            "rate_ratio": np.exp(self.params.to_numpy()),
            "rr_lo": np.exp(ci[0].to_numpy()),
            "rr_hi": np.exp(ci[1].to_numpy()),
        })
        return out.reset_index(drop=True)


def _check_levels(rates: pd.DataFrame, spec: ModelSpec, settings):
    """Every configured country/sex level used by the model must have rows."""
    if spec.uses("country"):
        for code in settings.country_codes:
            if not (rates[COUNTRY_COLUMN] == code).any():
                raise InsufficientDataError(
                    f"No observations for country level in model '{spec.name}'",
                    key=(code, None, None))
    if spec.uses("sex"):
        for sex in settings.sexes:
            if not (rates[SEX_COLUMN] == sex).any():
                raise InsufficientDataError(
                    f"No observations for sex level in model '{spec.name}'",
                    key=(None, None, sex))
    if spec.uses("country") and spec.uses("sex"):
        seen = set(zip(rates[COUNTRY_COLUMN], rates[SEX_COLUMN]))
        for code in settings.country_codes:
            for sex in settings.sexes:
                if (code, sex) not in seen:
                    raise InsufficientDataError(
                        f"No observations for country/sex combination in model '{spec.name}'",
                        key=(code, None, sex))


def fit_model(rates: pd.DataFrame, spec: ModelSpec, settings) -> FittedModel:
    """OLS of log(rate) on the model design; rank deficiency is an error."""
    if rates.empty:
        raise InsufficientDataError(f"Empty rate table for model '{spec.name}'")
    _check_levels(rates, spec, settings)

    formula = spec.formula(settings)
    _, X = patsy.dmatrices(formula, rates, return_type="dataframe")
    rank = np.linalg.matrix_rank(X.to_numpy())
    if rank < X.shape[1]:
        raise InsufficientDataError(
            f"Design for '{spec.name}' is rank deficient ({rank} < {X.shape[1]} columns)")
    if X.shape[0] <= X.shape[1]:
        raise InsufficientDataError(
            f"Model '{spec.name}' has {X.shape[1]} parameters but only {X.shape[0]} rows")

    results = smf.ols(formula, data=rates).fit()
    return FittedModel(spec=spec, formula=formula, results=results)


def fit_all(rates: pd.DataFrame, settings, specs=None) -> "OrderedDict[str, FittedModel]":
    specs = MODEL_SPECS if specs is None else specs
    specs = specs.values() if isinstance(specs, dict) else specs
    fits = OrderedDict()
    for spec in specs:
        fit = fit_model(rates, spec, settings)
        fits[spec.name] = fit
        print(f"[info] {spec.name:<14} k={fit.n_params:>3}  R2={fit.rsquared:.3f}  "
              f"RSS={fit.ssr:.4f}  logLik={fit.llf:.2f}")
    return fits
