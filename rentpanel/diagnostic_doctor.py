import logging
import warnings

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy import stats
from statsmodels.stats.diagnostic import het_breuschpagan
from statsmodels.stats.outliers_influence import variance_inflation_factor

from rentpanel import settings
from rentpanel.exceptions import ShortPanelWarning
from rentpanel.results import DiagnosticResult

logger = logging.getLogger(__name__)


def _require_panel(model, test):
    if not model.is_panel:
        raise ValueError(f"{test} needs residuals indexed by (entity, time).")


def _require_type(model, model_type, role):
    if model.model_type != model_type:
        raise ValueError(f"Expected a {model_type} model as {role}, got {model.model_type}.")


def _hausman_statistic(b_a: pd.Series, cov_a: pd.DataFrame, b_b: pd.Series, cov_b: pd.DataFrame):
    common = [p for p in b_a.index if p in b_b.index and p != "const"]
    if not common:
        raise ValueError("Models have no common slope coefficients.")
    diff = (b_a[common] - b_b[common]).to_numpy()
    cov_diff = (cov_a.loc[common, common] - cov_b.loc[common, common]).to_numpy()
    raw = float(diff @ np.linalg.pinv(cov_diff) @ diff)
    rank = int(np.linalg.matrix_rank(cov_diff))
    return raw, rank, common


class DiagnosticDoctor:
    """
    Runs econometric diagnostic tests on fitted panel models.

    Every test only computes a statistic and p-value. ``alpha`` is kept for
    ``recommend_model`` and for callers formatting conclusions.
    """
    def __init__(self, alpha: float = settings.SIGNIFICANCE_LEVEL,
                 min_periods: int = settings.MIN_PERIODS):
        self.alpha = alpha
        self.min_periods = min_periods

    def _warn_short(self, n_periods: int, test: str):
        if n_periods < self.min_periods:
            warnings.warn(
                f"{test} on a panel with {n_periods} period(s) is of little use "
                f"(fewer than {self.min_periods}).",
                ShortPanelWarning,
                stacklevel=3,
            )

    def f_test_effects(self, fe, pooled) -> DiagnosticResult:
        """
        F test of the fixed effects model against pooled OLS.
        H0: all entity effects are zero (pooled OLS is adequate).
        """
        _require_type(fe, "fixed-effects", "first argument")
        _require_type(pooled, "pooled", "second argument")
        if fe.nobs != pooled.nobs:
            raise ValueError("Models were fitted on different observations.")

        df_num = pooled.df_resid - fe.df_resid
        df_den = fe.df_resid
        if df_num <= 0:
            raise ValueError("Fixed effects model does not nest the pooled model.")
        f_stat = ((pooled.resid_ss - fe.resid_ss) / df_num) / (fe.resid_ss / df_den)
        p_value = float(stats.f.sf(f_stat, df_num, df_den))
        logger.debug("F test for entity effects: F=%.4f, p=%.4g", f_stat, p_value)
        return DiagnosticResult(
            test="F test for entity effects",
            statistic=float(f_stat),
            p_value=p_value,
            null_hypothesis="pooled OLS is adequate (no entity effects)",
            alternative="significant entity effects, fixed effects preferred",
            df=(int(df_num), int(df_den)),
            distribution="F",
        )

    def hausman(self, fe, re) -> DiagnosticResult:
        """
        Hausman specification test on the common slope coefficients.
        H0: random effects is consistent (preferred)
        H1: random effects is inconsistent (fixed effects preferred)

        The statistic is reported in absolute value, so it does not depend on
        which model is passed first.
        """
        raw, rank, common = _hausman_statistic(fe.params, fe.cov, re.params, re.cov)
        if raw < 0:
            logger.warning(
                "Covariance difference is not positive definite; Hausman statistic was %.4g",
                raw,
            )
        chi2_stat = abs(raw)
        p_value = float(stats.chi2.sf(chi2_stat, rank)) if rank > 0 else np.nan
        return DiagnosticResult(
            test="Hausman",
            statistic=chi2_stat,
            p_value=p_value,
            null_hypothesis="random effects is consistent and preferred",
            alternative="random effects is inconsistent, fixed effects preferred",
            df=(rank,),
        )

    def breusch_pagan_lm(self, pooled, kind: str = "bp") -> DiagnosticResult:
        """
        Lagrange multiplier test for entity effects based on pooled residuals.

        ``kind="bp"`` is the Breusch-Pagan form (chi2 with 1 df) and
        ``kind="honda"`` the one-sided standard normal form.
        """
        _require_type(pooled, "pooled", "model")
        _require_panel(pooled, "Breusch-Pagan LM test")
        e = pooled.resids
        grouped = e.groupby(level=0)
        sums, counts = grouped.sum(), grouped.size()
        n = len(e)
        denom = float((counts ** 2).sum() - n)
        if denom <= 0:
            raise ValueError("Breusch-Pagan LM test needs entities with repeated observations.")
        a = float((sums ** 2).sum()) / float(e @ e) - 1.0

        if kind == "bp":
            stat = n ** 2 / (2 * denom) * a ** 2
            p_value = float(stats.chi2.sf(stat, 1))
            df, dist = (1,), "chi2"
        elif kind == "honda":
            stat = np.sqrt(n ** 2 / (2 * denom)) * a
            p_value = float(stats.norm.sf(stat))
            df, dist = None, "normal"
        else:
            raise ValueError(f"Unknown LM test kind {kind!r}")
        return DiagnosticResult(
            test="Breusch-Pagan LM" if kind == "bp" else "Honda LM",
            statistic=float(stat),
            p_value=p_value,
            null_hypothesis="no panel effects (entity variance is zero)",
            alternative="significant panel effects, random effects preferred over pooled",
            df=df,
            distribution=dist,
        )

    def cross_sectional_dependence(self, model, kind: str = "cd") -> DiagnosticResult:
        """
        Tests for correlation of residuals across entities.

        ``kind`` is one of ``"lm"`` (Breusch-Pagan LM), ``"sclm"`` (scaled LM)
        or ``"cd"`` (Pesaran CD). Pairwise correlations use the periods both
        entities are observed in, so unbalanced panels are handled.
        """
        _require_panel(model, "Cross-sectional dependence test")
        wide = model.resids.unstack(level=0)
        self._warn_short(wide.shape[0], "Cross-sectional dependence test")

        present = wide.notna().astype(float)
        t_ij = (present.T @ present).to_numpy()
        rho = wide.corr(min_periods=2).to_numpy()
        upper = np.triu_indices(wide.shape[1], k=1)
        r, t = rho[upper], t_ij[upper]
        valid = ~np.isnan(r)
        r, t = r[valid], t[valid]
        pairs = len(r)

        names = {"lm": "Breusch-Pagan LM (cross-section)", "sclm": "Scaled LM", "cd": "Pesaran CD"}
        if kind not in names:
            raise ValueError(f"Unknown cross-sectional dependence test {kind!r}")
        if pairs == 0:
            logger.warning("No entity pairs with overlapping residuals; %s unavailable", names[kind])
            stat, p_value = np.nan, np.nan
            df = None
        elif kind == "lm":
            stat = float(np.sum(t * r ** 2))
            p_value = float(stats.chi2.sf(stat, pairs))
            df = (pairs,)
        elif kind == "sclm":
            stat = float(np.sqrt(1.0 / (2 * pairs)) * np.sum(t * r ** 2 - 1))
            p_value = float(2 * stats.norm.sf(abs(stat)))
            df = None
        else:
            # CD = sqrt(1 / P) * sum over the P entity pairs with overlapping
            # periods of sqrt(T_ij) rho_ij; P = N (N - 1) / 2 when balanced.
            stat = float(np.sqrt(1.0 / pairs) * np.sum(np.sqrt(t) * r))
            p_value = float(2 * stats.norm.sf(abs(stat)))
            df = None
        return DiagnosticResult(
            test=names[kind],
            statistic=stat,
            p_value=p_value,
            null_hypothesis="no cross-sectional dependence in residuals",
            alternative="cross-sectional dependence in residuals",
            df=df,
            distribution="chi2" if kind == "lm" else "normal",
        )

    def serial_correlation(self, model, order: int = None) -> DiagnosticResult:
        """
        Breusch-Godfrey test for serial correlation in panel residuals.

        Residuals are regressed on the model's design matrix and on their own
        lags within each entity (missing lags set to zero). LM = n * R^2 is
        chi2 with ``order`` degrees of freedom. The default order is the
        shortest entity time span minus one.
        """
        _require_panel(model, "Serial correlation test")
        e = model.resids
        grouped = e.groupby(level=0)
        n_periods = e.index.get_level_values(1).nunique()
        self._warn_short(n_periods, "Serial correlation test")

        if order is None:
            order = max(1, int(grouped.size().min()) - 1)
        if order < 1:
            raise ValueError("order must be at least 1")

        lags = pd.concat(
            {f"resid_lag{j}": grouped.shift(j) for j in range(1, order + 1)}, axis=1
        ).fillna(0.0)
        aux_x = sm.add_constant(pd.concat([model.exog, lags], axis=1), has_constant="skip")
        aux = sm.OLS(e, aux_x).fit()
        stat = float(aux.nobs * aux.rsquared)
        p_value = float(stats.chi2.sf(stat, order))
        return DiagnosticResult(
            test="Breusch-Godfrey serial correlation",
            statistic=stat,
            p_value=p_value,
            null_hypothesis=f"no serial correlation up to order {order}",
            alternative="serial correlation in residuals",
            df=(order,),
        )

    def heteroskedasticity(self, panel, dependent: str, covariates,
                           entity_dummies: bool = True) -> DiagnosticResult:
        """
        Studentized Breusch-Pagan test on ``dependent ~ covariates`` with
        entity dummies included among the regressors.
        H0: homoskedastic errors.
        """
        covariates = list(covariates)
        panel = panel.dropna([dependent] + covariates)
        frame = panel.df
        exog = frame[covariates].astype(float)
        if entity_dummies:
            entity = pd.Series(frame.index.get_level_values(0), index=frame.index)
            dummies = pd.get_dummies(entity, prefix="entity", drop_first=True, dtype=float)
            exog = pd.concat([exog, dummies], axis=1)
        exog = sm.add_constant(exog, has_constant="add")
        if exog.shape[1] >= len(frame):
            raise ValueError(
                f"Heteroskedasticity regression has {exog.shape[1]} regressors "
                f"but only {len(frame)} observations."
            )

        res = sm.OLS(frame[dependent].astype(float), exog).fit()
        lm_stat, p_value, _, _ = het_breuschpagan(res.resid, exog)
        return DiagnosticResult(
            test="Breusch-Pagan heteroskedasticity",
            statistic=float(lm_stat),
            p_value=float(p_value),
            null_hypothesis="homoskedastic errors",
            alternative="heteroskedastic errors",
            df=(exog.shape[1] - 1,),
        )

    def check_vif(self, exog_vars: pd.DataFrame) -> pd.Series:
        """
        Variance inflation factor of each covariate. Values above 10 are
        usually read as problematic multicollinearity.
        """
        exog = sm.add_constant(exog_vars.dropna().astype(float), has_constant="add")
        values = exog.to_numpy()
        vif = {
            col: variance_inflation_factor(values, i)
            for i, col in enumerate(exog.columns)
            if col != "const"
        }
        high = [col for col, v in vif.items() if v > 10]
        if high:
            logger.warning("High VIF (> 10) for %s", ", ".join(map(str, high)))
        return pd.Series(vif, name="VIF")

    def recommend_model(self, f_test=None, lm_test=None, hausman=None, alpha: float = None) -> str:
        """
        Picks among pooled OLS, fixed effects and random effects.

        Without evidence of entity effects (neither the F test nor the LM test
        rejects) pooled OLS is kept. Otherwise the Hausman test chooses between
        fixed and random effects; when it is missing, whichever effects test
        rejected decides.
        """
        alpha = self.alpha if alpha is None else alpha
        fe_effects = f_test is not None and f_test.rejects(alpha)
        re_effects = lm_test is not None and lm_test.rejects(alpha)
        if not fe_effects and not re_effects:
            return "pooled"
        if hausman is not None and not np.isnan(hausman.p_value):
            return "fixed-effects" if hausman.rejects(alpha) else "random-effects"
        return "fixed-effects" if fe_effects else "random-effects"
