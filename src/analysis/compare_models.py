# compare_models.py
# ---------------------------------------------------------------------------
# Read-only scoring of already fitted models:
#   - nested F-tests from RSS and residual degrees of freedom
#   - AIC (2 per parameter) and BIC (log n per parameter) with deltas
# The preferred model is *reported*, never picked. When AIC and BIC disagree,
# or several models sit within the tie tolerance, the choice stays with the
# analyst.
# ---------------------------------------------------------------------------

from dataclasses import dataclass, field
from typing import List

import numpy as np
import pandas as pd
from scipy import stats

from src.config import F_TEST_ALPHA, TIE_TOLERANCE
from src.errors import NotNestedError


@dataclass(frozen=True)
class FTestResult:
    base: str
    extended: str
    ssr_base: float
    ssr_extended: float
    df_num: float
    df_den: float
    F: float
    p_value: float
    alpha: float = F_TEST_ALPHA

    @property
    def significant(self) -> bool:
        return bool(self.p_value < self.alpha)


@dataclass
class ComparisonReport:
    table: pd.DataFrame
    best_aic: str
    best_bic: str
    near_ties_aic: List[str] = field(default_factory=list)
    near_ties_bic: List[str] = field(default_factory=list)

    @property
    def criteria_agree(self) -> bool:
        return self.best_aic == self.best_bic

    @property
    def needs_judgement(self) -> bool:
        """True when the criteria disagree or either has a near tie."""
        return (not self.criteria_agree
                or len(self.near_ties_aic) > 1
                or len(self.near_ties_bic) > 1)

    def describe(self) -> str:
        lines = [f"AIC prefers '{self.best_aic}', BIC prefers '{self.best_bic}'."]
        if len(self.near_ties_aic) > 1:
            lines.append(f"AIC near ties: {', '.join(self.near_ties_aic)}")
        if len(self.near_ties_bic) > 1:
            lines.append(f"BIC near ties: {', '.join(self.near_ties_bic)}")
        if self.needs_judgement:
            lines.append("No single preferred model; choose one explicitly.")
        return "\n".join(lines)


def is_nested(base, extended) -> bool:
    """True when extended's term set strictly contains base's."""
    return base.spec.term_set < extended.spec.term_set


def f_test(base, extended, alpha: float = F_TEST_ALPHA) -> FTestResult:
    """
    Nested-model F-test.

        F = ((RSS_b - RSS_e) / (df_b - df_e)) / (RSS_e / df_e)

    with df the residual degrees of freedom; p from the upper F tail.
    """
    if not is_nested(base, extended):
        raise NotNestedError(
            f"'{extended.name}' does not strictly contain the terms of '{base.name}'")
    if base.nobs != extended.nobs:
        raise NotNestedError(
            f"'{base.name}' and '{extended.name}' were fitted on different rows "
            f"({base.nobs} vs {extended.nobs})")

    df_num = base.df_resid - extended.df_resid
    df_den = extended.df_resid
    if df_num <= 0 or df_den <= 0:
        raise NotNestedError(
            f"Degenerate degrees of freedom for '{base.name}' vs '{extended.name}' "
            f"(df_num={df_num}, df_den={df_den})")

    ssr_b, ssr_e = base.ssr, extended.ssr
    if ssr_e <= 0.0:
        # exact fit of the extended model
        print(f"[warn] '{extended.name}' fits exactly (RSS=0); F reported as inf.")
        F, p = (np.inf, 0.0) if ssr_b > 0.0 else (np.nan, 1.0)
    else:
        F = ((ssr_b - ssr_e) / df_num) / (ssr_e / df_den)
        p = float(stats.f.sf(F, df_num, df_den))
    return FTestResult(base.name, extended.name, ssr_b, ssr_e,
                       df_num, df_den, float(F), p, alpha)


def sequential_f_tests(fits, alpha: float = F_TEST_ALPHA) -> pd.DataFrame:
    """F-test each model against its predecessor; non-nested neighbours are
    compared with the closest earlier model they do nest."""
    fitted = list(fits.values())
    rows = []
    for i in range(1, len(fitted)):
        ext = fitted[i]
        base = next((b for b in reversed(fitted[:i]) if is_nested(b, ext)), None)
        if base is None:
            print(f"[warn] '{ext.name}' nests none of the earlier models; no F-test.")
            continue
        if base is not fitted[i - 1]:
            print(f"[info] '{ext.name}' is not nested in '{fitted[i - 1].name}'; "
                  f"testing against '{base.name}'.")
        r = f_test(base, ext, alpha)
        rows.append({
            "base": r.base, "extended": r.extended,
            "ssr_base": r.ssr_base, "ssr_extended": r.ssr_extended,
            "df_num": r.df_num, "df_den": r.df_den,
            "F": r.F, "p_value": r.p_value, "significant": r.significant,
        })
    return pd.DataFrame(rows, columns=["base", "extended", "ssr_base", "ssr_extended",
                                       "df_num", "df_den", "F", "p_value", "significant"])


def penalized_scores(fit) -> dict:
    """AIC = -2 logLik + 2k and BIC = -2 logLik + log(n) k."""
    k, n, llf = fit.n_params, fit.nobs, fit.llf
    return {
        "aic": -2.0 * llf + 2.0 * k,
        "bic": -2.0 * llf + np.log(n) * k,
    }


def information_criteria(fits, tolerance: float = TIE_TOLERANCE) -> ComparisonReport:
    rows = []
    for name, fit in fits.items():
        sc = penalized_scores(fit)
        rows.append({"model": name, "k": fit.n_params, "nobs": fit.nobs,
                     "logLik": fit.llf, "ssr": fit.ssr, **sc})
    if not rows:
        raise ValueError("information_criteria needs at least one fitted model")

    tab = pd.DataFrame(rows)
    if tab["nobs"].nunique() > 1:
        sizes = ", ".join(f"{m}={n}" for m, n in zip(tab["model"], tab["nobs"]))
        raise NotNestedError(f"Models were fitted on different rows ({sizes}); "
                             "AIC/BIC are not comparable")
    for crit in ["aic", "bic"]:
        tab[f"delta_{crit}"] = tab[crit] - tab[crit].min()
        tab[f"near_best_{crit}"] = tab[f"delta_{crit}"] <= tolerance

    best_aic = tab.loc[tab["aic"].idxmin(), "model"]
    best_bic = tab.loc[tab["bic"].idxmin(), "model"]
    return ComparisonReport(
        table=tab,
        best_aic=best_aic,
        best_bic=best_bic,
        near_ties_aic=tab.loc[tab["near_best_aic"], "model"].tolist(),
        near_ties_bic=tab.loc[tab["near_best_bic"], "model"].tolist(),
    )
