# interpret.py
# ---------------------------------------------------------------------------
# Turn log-scale coefficients into multiplicative effects (rate ratios).
#
# Main effects:   RR(level) = exp(coef(level)); the reference level has coef 0.
# Interactions:   with treatment coding the covariate's main effect is the
#                 reference country's own effect, and each other country's
#                 interaction coefficient is a difference from it:
#
#                     RR(reference) = exp(b_ref)
#                     RR(X)         = exp(b_X + b_ref)      X != reference
#
# interaction_effect() is the only place that rule is implemented.
# ---------------------------------------------------------------------------

import re

import numpy as np
import pandas as pd

from src.analysis.fit_models import COUNTRY_COLUMN, SEX_COLUMN

_LEVEL_RE = re.compile(r"\[(?:T\.)?([^\]]+)\]")


def strip_term_prefix(name: str) -> str:
    """'C(code, Treatment(...))[T.NOR]:post' -> 'NOR'."""
    m = _LEVEL_RE.search(name)
    if m is None:
        raise ValueError(f"Not a categorical coefficient name: {name!r}")
    return m.group(1)


def _factor_prefix(factor: str, settings):
    if factor == "country":
        return f"C({COUNTRY_COLUMN}", settings.reference_country, settings.country_codes
    if factor == "sex":
        return f"C({SEX_COLUMN}", settings.reference_sex, settings.sexes
    raise ValueError(f"Unknown factor {factor!r}; use 'country' or 'sex'")


def category_effects(fit, factor: str, settings) -> pd.DataFrame:
    """Rate ratio of each level of ``factor`` relative to its reference level."""
    prefix, reference, levels = _factor_prefix(factor, settings)
    params = fit.params
    main = {strip_term_prefix(n): float(v) for n, v in params.items()
            if n.startswith(prefix) and n.endswith("]")}
    if not main:
        raise ValueError(f"Model '{fit.name}' has no {factor} main effect")

    coefs = {reference: 0.0, **main}
    rows = [{"level": lvl, "coef": coefs[lvl], "rate_ratio": float(np.exp(coefs[lvl])),
             "is_reference": lvl == reference}
            for lvl in levels if lvl in coefs]
    return pd.DataFrame(rows)


def interaction_effect(category: str, reference: str, coefs) -> float:
    """
    Multiplicative effect of an interacted covariate for one category.

    ``coefs[reference]`` is the covariate's main-effect coefficient (the
    reference category's own effect); ``coefs[category]`` is the category's
    interaction coefficient.
    """
    if category == reference:
        return float(np.exp(coefs[reference]))
    return float(np.exp(coefs[category] + coefs[reference]))


def interaction_coefs(fit, covariate: str, settings) -> dict:
    """Map country -> coefficient for the country:covariate interaction,
    with the reference country mapped to the covariate's main effect."""
    prefix = f"C({COUNTRY_COLUMN}"
    suffix = f":{covariate}"
    params = fit.params
    if covariate not in params.index:
        raise ValueError(f"Model '{fit.name}' has no '{covariate}' main effect")
    inter = {strip_term_prefix(n): float(v) for n, v in params.items()
             if n.startswith(prefix) and n.endswith(suffix)}
    if not inter:
        raise ValueError(f"Model '{fit.name}' has no country:{covariate} interaction")
    return {settings.reference_country: float(params[covariate]), **inter}


def interaction_effects(fit, covariate: str, settings) -> pd.DataFrame:
    coefs = interaction_coefs(fit, covariate, settings)
    ref = settings.reference_country
    rows = []
    for code in settings.country_codes:
        if code not in coefs:
            continue
        rows.append({
            "model": fit.name,
            "covariate": covariate,
            "code": code,
            "coef": coefs[code],
            "rate_ratio": interaction_effect(code, ref, coefs),
            "is_reference": code == ref,
        })
    return pd.DataFrame(rows)


def post_threshold_effects(fit, settings) -> pd.DataFrame:
    """Per-country level shift after the threshold (country_post model)."""
    return interaction_effects(fit, "post", settings)


def trend_effects(fit, settings) -> pd.DataFrame:
    """Per-country yearly multiplicative change after the threshold
    (country_trend model)."""
    return interaction_effects(fit, "years_since", settings)
