# ingest_lexis.py
# ---------------------------------------------------------------------------
# Load the cached HMD infant (age 0) Lexis snapshot in long format:
#   code, cohort, year, sex, tri_type, deaths, exposures
# The remote HMD client is not part of this project; load_or_fetch() only
# accepts one as a callable and writes its output to the cache.
# ---------------------------------------------------------------------------

from pathlib import Path

import numpy as np
import pandas as pd

from src.config import COUNTRY_CODES, PATH_LEXIS_CACHE, SEXES, START_YEAR, TRIANGLES
from src.errors import ConfigurationError

LEXIS_COLUMNS = ["code", "cohort", "year", "sex", "tri_type", "deaths", "exposures"]
KEY_COLUMNS = ["code", "cohort", "sex"]


def _read_table(path: Path) -> pd.DataFrame:
    if path.suffix.lower() in [".pkl", ".pickle"]:
        return pd.read_pickle(path)
    return pd.read_csv(path)


def tag_triangles(df: pd.DataFrame) -> pd.DataFrame:
    """Label each row 'lower' (year == cohort) or 'upper' (year > cohort)."""
    tri = np.where(df["year"].to_numpy() == df["cohort"].to_numpy(), "lower", "upper")
    return df.assign(tri_type=tri)


def validate_lexis(df: pd.DataFrame) -> pd.DataFrame:
    """Check schema and categorical values; return a normalised copy."""
    df = df.copy()
    if "tri_type" not in df.columns and {"year", "cohort"} <= set(df.columns):
        df = tag_triangles(df)

    missing = [c for c in LEXIS_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Lexis table is missing columns: {missing}")

    df = df.loc[:, LEXIS_COLUMNS]
    df["code"] = df["code"].astype(str).str.upper()
    df["sex"] = df["sex"].astype(str).str.lower()
    df["tri_type"] = df["tri_type"].astype(str).str.lower()

    bad_sex = sorted(set(df["sex"]) - set(SEXES))
    if bad_sex:
        raise ValueError(f"Unexpected sex labels: {bad_sex}")
    bad_tri = sorted(set(df["tri_type"]) - set(TRIANGLES))
    if bad_tri:
        raise ValueError(f"Unexpected triangle labels: {bad_tri}")

    for c in ["cohort", "year"]:
        df[c] = pd.to_numeric(df[c], errors="raise").astype(int)
    for c in ["deaths", "exposures"]:
        df[c] = pd.to_numeric(df[c], errors="coerce")
    n_bad = int(df[["deaths", "exposures"]].isna().any(axis=1).sum())
    if n_bad:
        raise ValueError(f"{n_bad} rows have non-numeric deaths/exposures.")

    return df.reset_index(drop=True)


def load_lexis_snapshot(path=PATH_LEXIS_CACHE) -> pd.DataFrame:
    """Read and validate the cached snapshot. A missing file is fatal."""
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(
            f"Cached Lexis snapshot not found: {path}. "
            "Materialise it with load_or_fetch() or copy it into data/.")
    df = validate_lexis(_read_table(path))
    print(f"[info] Loaded {len(df):,} Lexis rows for {df['code'].nunique()} countries from {path.name}")
    return df


def select_countries(df: pd.DataFrame, codes=COUNTRY_CODES, start_year: int = START_YEAR) -> pd.DataFrame:
    """Keep configured countries, cohorts >= start_year and drop sex == 'total'."""
    codes = [c.upper() for c in codes]
    absent = sorted(set(codes) - set(df["code"]))
    if absent:
        print(f"[warn] No rows for country codes: {absent}")
    out = df[df["code"].isin(codes)
             & (df["cohort"] >= start_year)
             & (df["sex"] != "total")]
    return out.reset_index(drop=True)


def load_or_fetch(path=PATH_LEXIS_CACHE, fetcher=None, credentials=None, codes=COUNTRY_CODES) -> pd.DataFrame:
    """
    Return the cached snapshot, fetching it first when it does not exist.

    Parameters
    ----------
    path : Path
        Cache location. Used as-is when present.
    fetcher : callable, optional
        ``fetcher(code, username, password) -> DataFrame`` in the Lexis schema.
        Failures propagate; there is no retry.
    credentials : HMDCredentials, optional
        Required together with ``fetcher``.
    codes : sequence of str
        Countries to fetch.
    """
    path = Path(path)
    if path.exists():
        return load_lexis_snapshot(path)

    if fetcher is None or credentials is None:
        raise ConfigurationError(
            f"No cached snapshot at {path} and no fetcher/credentials supplied.")

    frames = []
    for code in codes:
        print(f"[info] Fetching {code} from HMD ...")
        frames.append(fetcher(code, credentials.username, credentials.password))
    df = validate_lexis(pd.concat(frames, ignore_index=True))

    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() in [".pkl", ".pickle"]:
        df.to_pickle(path)
    else:
        df.to_csv(path, index=False)
    print(f"✓ Lexis snapshot cached → {path}")
    return df
