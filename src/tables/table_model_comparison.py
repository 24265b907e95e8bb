# table_model_comparison.py
# CSV tables for the nested model sequence
# IC comparison, sequential F-tests, coefficients (with rate ratios) and
# per-country post-threshold effects.

import pandas as pd

from src.config import PATH_TABLE_COEFS, PATH_TABLE_EFFECTS, PATH_TABLE_FTESTS, PATH_TABLE_IC


def coefficient_table(fits) -> pd.DataFrame:
    return pd.concat([f.summary_frame() for f in fits.values()], ignore_index=True)


def write_tables(report, ftests, fits, effects=None,
                 path_ic=PATH_TABLE_IC, path_ftests=PATH_TABLE_FTESTS,
                 path_coefs=PATH_TABLE_COEFS, path_effects=PATH_TABLE_EFFECTS):
    """Write every table that has content; returns the paths written."""
    written = []
    jobs = [(report.table, path_ic), (ftests, path_ftests), (coefficient_table(fits), path_coefs)]
    if effects is not None and len(effects):
        jobs.append((effects, path_effects))

    for tab, path in jobs:
        path.parent.mkdir(parents=True, exist_ok=True)
        tab.to_csv(path, index=False, float_format="%.6g")
        print(f"✓ {path}")
        written.append(path)
    return written
