# run_imr_models.py
# ---------------------------------------------------------------------------
# Infant mortality pipeline:
#   cached HMD Lexis snapshot → cohort rates → six nested log-linear models
#   → F-tests + AIC/BIC → rate ratios → grid predictions → tables / figures
#
# Model selection stays manual: the comparison report is printed and the
# model used for interpretation and prediction is chosen with --model.
# ---------------------------------------------------------------------------

import argparse
import sys
from dataclasses import replace
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

import matplotlib.pyplot as plt
import pandas as pd

from src.analysis.compare_models import information_criteria, sequential_f_tests
from src.analysis.fit_models import MODEL_SPECS, fit_all
from src.analysis.interpret import category_effects, post_threshold_effects, trend_effects
from src.analysis.predict import build_prediction_grid, fit_diagnostics, join_observed, predict_log_rate
from src.config import (
    DEFAULT_SETTINGS, DIR_FIGURES, DIR_OUTPUT, PATH_LEXIS_CACHE, PATH_PREDICTIONS, PATH_RATE_TABLE,
    PATH_TABLE_COEFS, PATH_TABLE_EFFECTS, PATH_TABLE_FTESTS, PATH_TABLE_IC,
    ensure_dirs,
)
from src.data_processing.aggregate_lexis import build_rate_table
from src.data_processing.ingest_lexis import load_lexis_snapshot
from src.tables.table_model_comparison import write_tables
from src.visualization.fig_imr_trends import plot_observed_vs_predicted, plot_rate_ratios


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Fit and compare infant mortality trend models")
    p.add_argument("--data", type=Path, default=PATH_LEXIS_CACHE, help="Cached Lexis snapshot (csv/pkl)")
    p.add_argument("--model", default="country_post", choices=list(MODEL_SPECS),
                   help="Model used for interpretation and prediction")
    p.add_argument("--reference", default=DEFAULT_SETTINGS.reference_country, help="Reference country code")
    p.add_argument("--countries", nargs="+", default=None, help="HMD country codes (default: configured list)")
    p.add_argument("--threshold", type=int, default=DEFAULT_SETTINGS.threshold_year)
    p.add_argument("--start-year", type=int, default=DEFAULT_SETTINGS.start_year)
    p.add_argument("--grid-start", type=int, default=None, help="First cohort of the prediction grid")
    p.add_argument("--grid-end", type=int, default=None, help="Last cohort of the prediction grid")
    p.add_argument("--drop-incomplete", action="store_true",
                   help="Drop (and list) keys missing a Lexis triangle instead of stopping")
    p.add_argument("--out", type=Path, default=DIR_OUTPUT, help="Directory for CSV output")
    p.add_argument("--figures", type=Path, default=DIR_FIGURES, help="Directory for figures")
    p.add_argument("--no-plot", action="store_true", help="Skip figures")
    p.add_argument("--no-tables", action="store_true", help="Skip CSV output")
    return p.parse_args(argv)


def interpret(fit, settings) -> pd.DataFrame:
    """Rate-ratio table for whichever terms the chosen model has."""
    frames = []
    if fit.spec.uses("country"):
        frames.append(category_effects(fit, "country", settings).assign(effect="country"))
    if fit.spec.uses("sex"):
        frames.append(category_effects(fit, "sex", settings).assign(effect="sex"))
    if "country:post" in fit.spec.terms:
        frames.append(post_threshold_effects(fit, settings)
                      .rename(columns={"code": "level"}).assign(effect="post"))
    if "country:years_since" in fit.spec.terms:
        frames.append(trend_effects(fit, settings)
                      .rename(columns={"code": "level"}).assign(effect="years_since"))
    if not frames:
        return pd.DataFrame()
    out = pd.concat(frames, ignore_index=True)
    out["model"] = fit.name
    return out


def main(argv=None):
    args = parse_args(argv)
    codes = tuple(c.upper() for c in args.countries) if args.countries else DEFAULT_SETTINGS.country_codes
    settings = replace(DEFAULT_SETTINGS,
                       country_codes=codes,
                       reference_country=args.reference.upper(),
                       threshold_year=args.threshold,
                       start_year=args.start_year,
                       origin_year=args.start_year)
    print("--- Infant mortality trend models ---")

    # 1. Data
    lexis = load_lexis_snapshot(args.data)
    rates = build_rate_table(lexis, settings, drop_incomplete=args.drop_incomplete)

    # 2. Fit the nested sequence
    fits = fit_all(rates, settings)

    # 3. Compare (report only)
    ftests = sequential_f_tests(fits)
    report = information_criteria(fits)
    print("\nSequential F-tests:")
    print(ftests[["base", "extended", "F", "p_value", "significant"]].to_string(index=False))
    print("\nInformation criteria:")
    print(report.table[["model", "k", "aic", "delta_aic", "bic", "delta_bic"]].to_string(index=False))
    print(report.describe())

    # 4. Interpret the chosen model
    fit = fits[args.model]
    print(f"\nUsing model '{fit.name}': {fit.formula}")
    effects = interpret(fit, settings)
    if len(effects):
        print(effects[["effect", "level", "coef", "rate_ratio"]].to_string(index=False))
    diag = fit_diagnostics(fit, rates)
    print(f"[info] R2={diag['r2']:.3f}  resid SD={diag['resid_sd']:.4f}  MAE(log)={diag['mae_log']:.4f}")

    # 5. Predict on the grid and join observed
    g0 = args.grid_start if args.grid_start is not None else int(rates["cohort"].min())
    g1 = args.grid_end if args.grid_end is not None else int(rates["cohort"].max())
    grid = build_prediction_grid(range(g0, g1 + 1), settings)
    joined = join_observed(predict_log_rate(fit, grid), rates)

    if not args.no_tables:
        tables = args.out / "tables"
        ensure_dirs(args.out, tables)
        path_rates, path_pred = args.out / PATH_RATE_TABLE.name, args.out / PATH_PREDICTIONS.name
        rates.to_csv(path_rates, index=False)
        joined.to_csv(path_pred, index=False)
        print(f"✓ {path_rates}\n✓ {path_pred}")
        write_tables(report, ftests, fits, effects,
                     path_ic=tables / PATH_TABLE_IC.name,
                     path_ftests=tables / PATH_TABLE_FTESTS.name,
                     path_coefs=tables / PATH_TABLE_COEFS.name,
                     path_effects=tables / PATH_TABLE_EFFECTS.name)

    if not args.no_plot:
        fig = plot_observed_vs_predicted(joined, settings, directory=args.figures)
        plt.close(fig)
        post = effects[effects["effect"] == "post"] if len(effects) else effects
        if len(post):
            fig = plot_rate_ratios(post.rename(columns={"level": "code"}), directory=args.figures)
            plt.close(fig)

    return 0


if __name__ == "__main__":
    sys.exit(main())
