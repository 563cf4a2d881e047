from rentpanel.diagnostic_doctor import DiagnosticDoctor
from rentpanel.exceptions import (
    CollinearityError,
    ConvergenceFailure,
    DataIntegrityError,
    DegenerateVarianceError,
    DuplicateKeyError,
    MissingColumnError,
    PanelError,
    ShortPanelWarning,
)
from rentpanel.loader import load_panel_csv
from rentpanel.panel import PanelDataset
from rentpanel.panel_modeler import (
    PanelModeler,
    fit_fixed_effects,
    fit_pooled,
    fit_random_effects,
)
from rentpanel.reporting import diagnostics_table, model_comparison_table, significance_stars
from rentpanel.results import DiagnosticResult, FittedModel

__version__ = "0.1.0"
