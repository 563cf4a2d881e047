from dataclasses import dataclass, field
from typing import Optional

import numpy as np
import pandas as pd
from scipy import stats

from rentpanel.settings import SIGNIFICANCE_LEVEL

MODEL_TYPES = ("pooled", "fixed-effects", "random-effects")


@dataclass(frozen=True)
class FittedModel:
    """
    Result of one estimation. Created by the estimators in
    ``rentpanel.panel_modeler`` and never modified afterwards.

    ``exog`` is the design matrix as it entered the final least-squares step
    (raw for pooled, within-demeaned for fixed effects, quasi-demeaned for
    random effects) and ``resids`` are the matching residuals, both indexed
    by (entity, time) when the model was fitted on a panel.
    """
    model_type: str
    dependent: str
    covariates: tuple
    params: pd.Series
    std_errors: pd.Series
    cov: pd.DataFrame
    resids: pd.Series
    fitted_values: pd.Series
    exog: pd.DataFrame
    nobs: int
    df_model: int
    df_resid: int
    rsquared: float
    rsquared_adj: float
    n_entities: Optional[int] = None
    estimated_effects: Optional[pd.Series] = None
    theta: Optional[pd.Series] = None
    variance_components: dict = field(default_factory=dict)
    variance_clamped: bool = False

    def __post_init__(self):
        if self.model_type not in MODEL_TYPES:
            raise ValueError(f"Unknown model type {self.model_type!r}")
        # Own copies so that no caller can reach into a shared result
        for name in ("params", "std_errors", "cov", "resids", "fitted_values", "exog",
                     "estimated_effects", "theta"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, value.copy())
        object.__setattr__(self, "covariates", tuple(self.covariates))
        object.__setattr__(self, "variance_components", dict(self.variance_components))

    @property
    def tstats(self) -> pd.Series:
        return self.params / self.std_errors

    @property
    def pvalues(self) -> pd.Series:
        t = self.tstats.abs()
        return pd.Series(2 * stats.t.sf(t, self.df_resid), index=self.params.index)

    @property
    def resid_ss(self) -> float:
        return float(np.sum(np.square(self.resids.to_numpy())))

    @property
    def has_constant(self) -> bool:
        return "const" in self.params.index

    @property
    def is_panel(self) -> bool:
        return isinstance(self.resids.index, pd.MultiIndex)

    def summary_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "coef": self.params,
            "std_err": self.std_errors,
            "t": self.tstats,
            "p_value": self.pvalues,
        })


@dataclass(frozen=True)
class DiagnosticResult:
    """
    Statistic and p-value of one hypothesis test.

    The threshold is only applied on demand through ``rejects`` and
    ``conclusion``.
    """
    test: str
    statistic: float
    p_value: float
    null_hypothesis: str
    alternative: str
    df: Optional[tuple] = None
    distribution: str = "chi2"

    def rejects(self, alpha: float = SIGNIFICANCE_LEVEL) -> bool:
        if self.p_value is None or np.isnan(self.p_value):
            return False
        return self.p_value < alpha

    def conclusion(self, alpha: float = SIGNIFICANCE_LEVEL) -> str:
        if self.p_value is None or np.isnan(self.p_value):
            return "Inconclusive (statistic unavailable)"
        if self.rejects(alpha):
            return f"Reject H0 at {alpha:g}: {self.alternative}"
        return f"Fail to reject H0 at {alpha:g}: {self.null_hypothesis}"

    def to_dict(self, alpha: float = SIGNIFICANCE_LEVEL) -> dict:
        return {
            "test": self.test,
            "statistic": self.statistic,
            "df": self.df,
            "p_value": self.p_value,
            "conclusion": self.conclusion(alpha),
        }
