# config.py
# Centralized path and model configuration for the infant mortality project
# -------------------------------------------------------------------
# All paths are defined relative to the project root.
# The cached HMD snapshot lives in data/, outputs go to results/ and figures/.
# -------------------------------------------------------------------

import os
from dataclasses import dataclass, field
from pathlib import Path

from src.errors import ConfigurationError

# Project root (parent of src/ directory)
_THIS_FILE = Path(__file__).resolve()
if _THIS_FILE.parent.name == "src":
    PROJECT_ROOT = _THIS_FILE.parent.parent
else:
    PROJECT_ROOT = _THIS_FILE.parent

# =====================================================================
# Input Data
# =====================================================================
DIR_DATA = PROJECT_ROOT / "data"

# Long-format HMD Lexis snapshot (age 0): code, cohort, year, sex,
# tri_type, deaths, exposures
PATH_LEXIS_CACHE = DIR_DATA / "hmd_infant_lexis.csv"

# =====================================================================
# Output Directories
# =====================================================================
DIR_OUTPUT = PROJECT_ROOT / "results"
DIR_TABLES = DIR_OUTPUT / "tables"
DIR_FIGURES = PROJECT_ROOT / "figures"

# =====================================================================
# Output Files
# =====================================================================
PATH_RATE_TABLE = DIR_OUTPUT / "infant_rates_by_cohort.csv"
PATH_PREDICTIONS = DIR_OUTPUT / "imr_predictions_grid.csv"

PATH_TABLE_IC = DIR_TABLES / "table_model_ic.csv"
PATH_TABLE_FTESTS = DIR_TABLES / "table_model_ftests.csv"
PATH_TABLE_COEFS = DIR_TABLES / "table_model_coefficients.csv"
PATH_TABLE_EFFECTS = DIR_TABLES / "table_rate_ratios.csv"

FIG_NAME_TRENDS = "fig_imr_observed_vs_predicted"
FIG_NAME_RATIOS = "fig_imr_post_threshold_ratios"

# =====================================================================
# Model Constants
# =====================================================================
# HMD country codes under comparison
COUNTRY_CODES = (
    "AUS", "AUT", "BEL", "CAN", "DNK", "FIN",
    "FRATNP", "DEUTNP", "NLD", "NOR", "SWE", "GBR_NP",
)
REFERENCE_COUNTRY = "SWE"     # Nordic baseline for country contrasts
REFERENCE_SEX = "female"

SEXES = ("female", "male", "total")
MODEL_SEXES = ("female", "male")
TRIANGLES = ("lower", "upper")

START_YEAR = 1970             # earliest cohort used for fitting
ORIGIN_YEAR = START_YEAR      # years-since-origin is counted from here
THRESHOLD_YEAR = 2012         # first cohort of the post-threshold period

# IC differences at or below this are reported as near ties
TIE_TOLERANCE = 2.0
# significance level for nested F-tests
F_TEST_ALPHA = 0.05


@dataclass(frozen=True)
class ModelSettings:
    """Constants every stage of the pipeline needs, passed explicitly."""
    reference_country: str = REFERENCE_COUNTRY
    reference_sex: str = REFERENCE_SEX
    threshold_year: int = THRESHOLD_YEAR
    start_year: int = START_YEAR
    origin_year: int = ORIGIN_YEAR
    country_codes: tuple = COUNTRY_CODES
    sexes: tuple = MODEL_SEXES

    def __post_init__(self):
        if self.reference_country not in self.country_codes:
            raise ConfigurationError(
                f"Reference country {self.reference_country!r} is not in the country list.")
        if self.reference_sex not in self.sexes:
            raise ConfigurationError(
                f"Reference sex {self.reference_sex!r} is not one of {self.sexes}.")


DEFAULT_SETTINGS = ModelSettings()


@dataclass(frozen=True)
class HMDCredentials:
    """Login for the HMD fetcher. Passed in explicitly, never read globally."""
    username: str
    password: str = field(repr=False)

    @classmethod
    def from_env(cls, environ=None):
        env = os.environ if environ is None else environ
        username = env.get("HMD_USERNAME", "")
        password = env.get("HMD_PASSWORD", "")
        if not username or not password:
            raise ConfigurationError(
                "HMD_USERNAME and HMD_PASSWORD must both be set to fetch from HMD.")
        return cls(username=username, password=password)


# =====================================================================
# Publication Figure Settings
# =====================================================================
FIG_DPI_SCREEN = 150      # For quick preview
FIG_DPI_PRINT = 300       # Minimum for publication

FIG_FONT_SIZE_SMALL = 8
FIG_FONT_SIZE_NORMAL = 10
FIG_FONT_SIZE_LARGE = 12
FIG_FONT_SIZE_TITLE = 14

PUBLICATION_RC_PARAMS = {
    'font.family': 'sans-serif',
    'font.sans-serif': ['Arial', 'Helvetica', 'DejaVu Sans'],
    'font.size': FIG_FONT_SIZE_NORMAL,
    'axes.titlesize': FIG_FONT_SIZE_LARGE,
    'axes.labelsize': FIG_FONT_SIZE_NORMAL,
    'xtick.labelsize': FIG_FONT_SIZE_SMALL,
    'ytick.labelsize': FIG_FONT_SIZE_SMALL,
    'legend.fontsize': FIG_FONT_SIZE_SMALL,
    'figure.titlesize': FIG_FONT_SIZE_TITLE,
    'figure.dpi': FIG_DPI_SCREEN,
    'savefig.dpi': FIG_DPI_PRINT,
    'savefig.bbox': 'tight',
    'savefig.pad_inches': 0.1,
    'pdf.fonttype': 42,
    'ps.fonttype': 42,
}


# =====================================================================
# Utility Functions
# =====================================================================
def ensure_dirs(*dirs):
    """Create output directories if they don't exist (default: the configured ones)."""
    for d in dirs or (DIR_DATA, DIR_OUTPUT, DIR_TABLES, DIR_FIGURES):
        Path(d).mkdir(parents=True, exist_ok=True)


def setup_publication_style():
    """Apply publication-quality matplotlib settings."""
    import matplotlib.pyplot as plt
    plt.rcParams.update(PUBLICATION_RC_PARAMS)


def save_figure(fig, name: str, formats=('png', 'pdf'), dpi=None, directory=None):
    """
    Save figure in multiple formats.

    Parameters
    ----------
    fig : matplotlib.figure.Figure
        The figure to save.
    name : str
        Base filename (without extension).
    formats : tuple
        File formats to save (default: png and pdf).
    dpi : int, optional
        Resolution for raster formats. Defaults to FIG_DPI_PRINT.
    directory : Path, optional
        Output directory. If None, uses DIR_FIGURES.

    Returns
    -------
    list of Path
        The files written.
    """
    if directory is None:
        directory = DIR_FIGURES

    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    written = []
    for fmt in formats:
        filepath = directory / f"{name}.{fmt}"
        if fmt in ('pdf', 'svg', 'eps'):
            fig.savefig(filepath, format=fmt, bbox_inches='tight')
        else:
            fig.savefig(filepath, format=fmt, dpi=dpi or FIG_DPI_PRINT, bbox_inches='tight')
        print(f"[OK] Saved {filepath}")
        written.append(filepath)
    return written
