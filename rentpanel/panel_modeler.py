import logging

import numpy as np
import pandas as pd
import statsmodels.api as sm
from linearmodels.panel import PanelOLS, PooledOLS, RandomEffects
from linearmodels.panel.utility import AbsorbingEffectError

from rentpanel import settings
from rentpanel.diagnostic_doctor import DiagnosticDoctor
from rentpanel.exceptions import (
    CollinearityError,
    ConvergenceFailure,
    DataIntegrityError,
    DegenerateVarianceError,
    MissingColumnError,
    PanelError,
)
from rentpanel.panel import PanelDataset
from rentpanel.results import FittedModel

logger = logging.getLogger(__name__)


def _check_formula(dependent: str, covariates) -> list:
    covariates = list(covariates)
    if not covariates:
        raise ValueError("At least one covariate is required.")
    if dependent in covariates:
        raise ValueError(f"Dependent variable {dependent} is also listed as a covariate.")
    if len(set(covariates)) != len(covariates):
        raise ValueError("Covariates must be unique.")
    return covariates


def _check_rank(x: pd.DataFrame):
    values = x.to_numpy(dtype=float)
    rank = np.linalg.matrix_rank(values)
    if rank < values.shape[1]:
        raise CollinearityError(
            list(x.columns),
            f"Design matrix is rank deficient (rank {rank} < {values.shape[1]}): "
            f"{', '.join(map(str, x.columns))}",
        )


def _no_within_variation(within: pd.DataFrame, original: pd.DataFrame,
                         tol: float = settings.COLLINEARITY_TOL) -> list:
    """Columns whose within-entity deviations are numerically zero."""
    absorbed = []
    for col in within.columns:
        scale = max(1.0, float(original[col].abs().max()))
        if float(within[col].abs().max()) <= tol * scale:
            absorbed.append(col)
    return absorbed


def _rsquared(y, resid, centered=True) -> float:
    y = np.asarray(y, dtype=float)
    resid = np.asarray(resid, dtype=float)
    if centered:
        y = y - y.mean()
    tss = float(y @ y)
    return 1.0 - float(resid @ resid) / tss if tss > 0.0 else 0.0


def _adjusted(rsquared: float, nobs: int, df_resid: int, has_intercept: bool) -> float:
    if df_resid <= 0:
        return np.nan
    return 1.0 - (1.0 - rsquared) * (nobs - int(has_intercept)) / df_resid


def fit_pooled(data, dependent: str, covariates) -> FittedModel:
    """
    Pooled OLS of ``dependent`` on ``covariates`` plus an intercept.

    ``data`` may be a flat DataFrame or a PanelDataset. The panel structure is
    ignored either way, so both give the same coefficients and standard errors.
    """
    covariates = _check_formula(dependent, covariates)
    columns = [dependent] + covariates

    if isinstance(data, PanelDataset):
        panel = data.dropna(columns)
        frame = panel.df
        n_entities = panel.n_entities
    else:
        missing = [c for c in columns if c not in data.columns]
        if missing:
            raise MissingColumnError(missing)
        frame = data.dropna(subset=columns)
        if len(frame) < len(data):
            logger.warning("Dropped %d rows with missing values", len(data) - len(frame))
        n_entities = None

    y = frame[dependent].astype(float)
    x = sm.add_constant(frame[covariates].astype(float), has_constant="add")
    _check_rank(x)
    nobs, k = x.shape
    if nobs <= k:
        raise DataIntegrityError(f"Pooled OLS needs more than {k} observations, got {nobs}.")

    if isinstance(data, PanelDataset):
        res = PooledOLS(y, x).fit(cov_type="unadjusted", debiased=True)
        params, std_errors, cov = res.params, res.std_errors, res.cov
    else:
        res = sm.OLS(y, x).fit()
        params, std_errors, cov = res.params, res.bse, res.cov_params()

    params = params.rename(dependent)
    fitted = x @ params
    resids = (y - fitted).rename("residual")
    df_resid = nobs - k
    rsquared = _rsquared(y, resids)
    logger.info("Pooled OLS fitted on %d observations (R2=%.4f)", nobs, rsquared)

    return FittedModel(
        model_type="pooled",
        dependent=dependent,
        covariates=covariates,
        params=params,
        std_errors=std_errors.rename("std_error"),
        cov=cov,
        resids=resids,
        fitted_values=fitted.rename("fitted_values"),
        exog=x,
        nobs=nobs,
        df_model=k,
        df_resid=df_resid,
        rsquared=rsquared,
        rsquared_adj=_adjusted(rsquared, nobs, df_resid, True),
        n_entities=n_entities,
    )


def fit_fixed_effects(panel: PanelDataset, dependent: str, covariates) -> FittedModel:
    """
    Within (entity fixed effects) estimator.

    Every variable is demeaned within its entity and the demeaned dependent
    variable is regressed on the demeaned covariates without an intercept.
    The entity effects are recovered as mean_t(y_it) - mean_t(X_it) b.

    Raises
    ------
    CollinearityError
        If a covariate does not vary within any entity, or the covariates are
        jointly absorbed by the entity effects.
    """
    covariates = _check_formula(dependent, covariates)
    columns = [dependent] + covariates
    panel = panel.dropna(columns)
    frame = panel.df

    within = panel.within_transform(columns)
    absorbed = _no_within_variation(within[covariates], frame[covariates])
    if absorbed:
        raise CollinearityError(absorbed)
    _check_rank(within[covariates])

    nobs, n_entities, k = panel.nobs, panel.n_entities, len(covariates)
    df_resid = nobs - n_entities - k
    if df_resid <= 0:
        raise DataIntegrityError(
            f"Fixed effects needs more than {n_entities + k} observations, got {nobs}."
        )

    y = frame[dependent].astype(float)
    x = frame[covariates].astype(float)
    try:
        res = PanelOLS(y, x, entity_effects=True).fit(cov_type="unadjusted", debiased=True)
    except AbsorbingEffectError as exc:
        raise CollinearityError(covariates, str(exc)) from exc

    params = res.params[covariates].rename(dependent)
    cov = res.cov.loc[covariates, covariates]
    std_errors = res.std_errors[covariates].rename("std_error")

    resids = (within[dependent] - within[covariates] @ params).rename("residual")
    fitted = (y - resids).rename("fitted_values")
    means = panel.entity_means(columns)
    effects = (means[dependent] - means[covariates] @ params).rename("estimated_effects")

    rsquared = _rsquared(within[dependent], resids, centered=False)
    logger.info(
        "Fixed effects fitted on %d observations, %d entities (within R2=%.4f)",
        nobs, n_entities, rsquared,
    )

    return FittedModel(
        model_type="fixed-effects",
        dependent=dependent,
        covariates=covariates,
        params=params,
        std_errors=std_errors,
        cov=cov,
        resids=resids,
        fitted_values=fitted,
        exog=within[covariates],
        nobs=nobs,
        df_model=k,
        df_resid=df_resid,
        rsquared=rsquared,
        rsquared_adj=_adjusted(rsquared, nobs, df_resid, False),
        n_entities=n_entities,
        estimated_effects=effects,
    )


def _re_degrees_of_freedom(panel: PanelDataset, covariates: list):
    """
    Residual degrees of freedom of the within and between regressions, and
    the harmonic mean of the entity period counts.
    """
    counts = panel.period_counts.to_numpy(dtype=float)
    nobs, n_entities = panel.nobs, panel.n_entities
    within = panel.within_transform(covariates)
    varying = [c for c in covariates
               if c not in _no_within_variation(within[[c]], panel.df[[c]])]
    df_within = nobs - n_entities - len(varying)
    if df_within <= 0:
        raise DataIntegrityError("Too few observations to estimate the idiosyncratic variance.")
    df_between = n_entities - len(covariates) - 1
    if df_between <= 0:
        raise DataIntegrityError(
            f"Random effects needs more than {len(covariates) + 1} entities, got {n_entities}."
        )
    t_bar = n_entities / (1.0 / counts).sum()
    return df_within, df_between, t_bar


def _components_from_residuals(resid: pd.Series, df_within: int, df_between: int,
                               t_bar: float):
    entity_mean = resid.groupby(level=0).transform("mean")
    e = (resid - entity_mean).to_numpy()
    sigma2_e = float(e @ e) / df_within
    ubar = resid.groupby(level=0).mean()
    u = (ubar - ubar.mean()).to_numpy()
    sigma2_u = float(u @ u) / df_between - sigma2_e / t_bar
    return sigma2_e, sigma2_u


def _check_components(sigma2_u: float):
    if not np.isfinite(sigma2_u) or sigma2_u <= 0:
        raise DegenerateVarianceError("sigma2_u", sigma2_u)


def _theta(counts: pd.Series, sigma2_e: float, sigma2_u: float) -> pd.Series:
    denom = counts.astype(float) * sigma2_u + sigma2_e
    denom = denom.to_numpy()
    theta = 1.0 - np.sqrt(np.divide(sigma2_e, denom, out=np.ones(len(denom)), where=denom > 0))
    return pd.Series(theta, index=counts.index, name="theta")


def _quasi_demean(data: pd.DataFrame, theta: pd.Series) -> pd.DataFrame:
    means = data.groupby(level=0).transform("mean")
    weights = theta.reindex(data.index.get_level_values(0)).to_numpy()
    return data - means.mul(weights, axis=0)


def fit_random_effects(panel: PanelDataset, dependent: str, covariates, iterate: bool = False,
                       max_iter: int = settings.RE_MAX_ITER,
                       tol: float = settings.RE_TOL) -> FittedModel:
    """
    Random effects (quasi-demeaned GLS) estimator.

    The one-step fit is linearmodels' RandomEffects, whose Swamy-Arora entity
    variance is floored at zero. A zero entity variance is reported as
    clamped: theta is then zero and the estimates coincide with pooled OLS.

    Parameters
    ----------
    iterate : bool
        Starting from the one-step fit, re-estimate the variance components
        from the GLS residuals until theta changes by less than ``tol``.
    max_iter : int
        Iteration limit when ``iterate`` is set.

    Raises
    ------
    ConvergenceFailure
        If ``iterate`` is set and theta has not settled after ``max_iter`` rounds.
    """
    covariates = _check_formula(dependent, covariates)
    columns = [dependent] + covariates
    panel = panel.dropna(columns)
    frame = panel.df
    counts = panel.period_counts

    y = frame[dependent].astype(float)
    x = sm.add_constant(frame[covariates].astype(float), has_constant="add")
    _check_rank(x)
    df_within, df_between, t_bar = _re_degrees_of_freedom(panel, covariates)
    clamped = False

    def clamp(value):
        nonlocal clamped
        try:
            _check_components(value)
        except DegenerateVarianceError as exc:
            logger.warning("%s; clamping the entity variance to zero", exc)
            clamped = True
            return 0.0
        return value

    res = RandomEffects(y, x).fit(cov_type="unadjusted", debiased=True)
    decomposition = res.variance_decomposition
    sigma2_e = float(decomposition["Residual"])
    sigma2_u = clamp(float(decomposition["Effects"]))
    theta = pd.Series(res.theta["theta"].to_numpy(), index=counts.index, name="theta")
    fit = (res.params, res.std_errors, res.cov, res.resids, res.df_resid)

    data = pd.concat([y, x], axis=1)
    transformed = _quasi_demean(data, theta)
    iterations = 0
    if iterate:
        change = np.inf
        while change >= tol:
            if iterations >= max_iter:
                raise ConvergenceFailure(iterations, change)
            iterations += 1
            composite = y - x @ fit[0]
            sigma2_e, sigma2_u = _components_from_residuals(composite, df_within, df_between, t_bar)
            sigma2_u = clamp(sigma2_u)
            new_theta = _theta(counts, sigma2_e, sigma2_u)
            change = float((new_theta - theta).abs().max())
            theta = new_theta
            transformed = _quasi_demean(data, theta)
            ols = sm.OLS(transformed[dependent], transformed[x.columns]).fit()
            fit = (ols.params, ols.bse, ols.cov_params(), ols.resid, ols.df_resid)
        logger.debug("Random effects variance components converged in %d iterations", iterations)

    params, std_errors, cov, resids, df_resid = fit
    params = params.rename(dependent)
    resids = pd.Series(np.asarray(resids, dtype=float).ravel(), index=y.index, name="residual")
    nobs, k = x.shape
    df_resid = int(df_resid)
    rsquared = _rsquared(transformed[dependent], resids)
    total = sigma2_u + sigma2_e
    logger.info(
        "Random effects fitted on %d observations (sigma2_u=%.4g, sigma2_e=%.4g)",
        nobs, sigma2_u, sigma2_e,
    )

    return FittedModel(
        model_type="random-effects",
        dependent=dependent,
        covariates=covariates,
        params=params,
        std_errors=std_errors.rename("std_error"),
        cov=cov,
        resids=resids,
        fitted_values=(x @ params).rename("fitted_values"),
        exog=transformed[x.columns],
        nobs=nobs,
        df_model=k,
        df_resid=df_resid,
        rsquared=rsquared,
        rsquared_adj=_adjusted(rsquared, nobs, df_resid, True),
        n_entities=panel.n_entities,
        theta=theta,
        variance_components={
            "sigma2_e": sigma2_e,
            "sigma2_u": sigma2_u,
            "rho": sigma2_u / total if total > 0 else 0.0,
            "iterations": iterations,
        },
        variance_clamped=clamped,
    )


ESTIMATORS = {
    "pooled": fit_pooled,
    "fixed-effects": fit_fixed_effects,
    "random-effects": fit_random_effects,
}


class PanelModeler:
    """
    Fits the pooled, fixed effects and random effects models on one panel and
    runs the diagnostic suite on them.
    """
    def __init__(self, data, entity_col: str = None, time_col: str = None,
                 alpha: float = settings.SIGNIFICANCE_LEVEL):
        """
        Accepts either a PanelDataset or a flat DataFrame plus the names of its
        entity and time columns.
        """
        if isinstance(data, PanelDataset):
            self.panel = data
        else:
            if entity_col is None or time_col is None:
                raise ValueError("entity_col and time_col are required for a DataFrame.")
            self.panel = PanelDataset(data, entity_col, time_col)
        self.entity_col = self.panel.entity_col
        self.time_col = self.panel.time_col
        self.alpha = alpha
        self.doctor = DiagnosticDoctor(alpha=alpha)
        self.results = {}
        self.errors = {}
        self.skipped_tests = {}
        self.dependent = None
        self.covariates = None

    @property
    def df(self) -> pd.DataFrame:
        return self.panel.df

    @property
    def pooled_res(self):
        return self.results.get("pooled")

    @property
    def fe_model_res(self):
        return self.results.get("fixed-effects")

    @property
    def re_model_res(self):
        return self.results.get("random-effects")

    def log_transform(self, cols: list):
        """
        Replaces the working panel with one that has ln(x) companions of ``cols``.
        """
        self.panel = self.panel.log_transform(cols)
        return self.panel

    def run_panel_models(self, Y: str, X: list, re_iterate: bool = False) -> dict:
        """
        Fits the three models. A model whose fit fails on a data or collinearity
        problem is logged and left out; the others are still fitted.
        """
        self.dependent = Y
        self.covariates = list(X)
        self.results = {}
        self.errors = {}
        for name, estimator in ESTIMATORS.items():
            kwargs = {"iterate": re_iterate} if name == "random-effects" else {}
            try:
                self.results[name] = estimator(self.panel, Y, X, **kwargs)
            except PanelError as exc:
                logger.warning("Skipping %s model: %s", name, exc)
                self.errors[name] = exc
        return dict(self.results)

    def run_hausman_test(self):
        """
        H0: random effects is consistent (preferred)
        H1: random effects is inconsistent (fixed effects preferred)
        """
        if self.fe_model_res is None or self.re_model_res is None:
            raise ValueError("Models must be run before performing Hausman test.")
        return self.doctor.hausman(self.fe_model_res, self.re_model_res)

    def _attempt(self, tests: dict, name: str, func, *args, **kwargs):
        try:
            tests[name] = func(*args, **kwargs)
        except (PanelError, ValueError, np.linalg.LinAlgError) as exc:
            logger.warning("Skipping %s test: %s", name, exc)
            self.skipped_tests[name] = exc

    def run_diagnostics(self) -> dict:
        """
        Runs every test whose input models are available. A test that cannot be
        computed on this panel is logged, recorded in ``skipped_tests`` and left
        out. Returns a dict of DiagnosticResult keyed by test name.
        """
        if not self.results:
            raise ValueError("Models must be run before performing diagnostics.")
        doctor = self.doctor
        pooled, fe, re = self.pooled_res, self.fe_model_res, self.re_model_res
        tests = {}
        self.skipped_tests = {}
        if fe is not None and pooled is not None:
            self._attempt(tests, "f_test", doctor.f_test_effects, fe, pooled)
        if fe is not None and re is not None:
            self._attempt(tests, "hausman", doctor.hausman, fe, re)
        if pooled is not None:
            self._attempt(tests, "breusch_pagan_lm", doctor.breusch_pagan_lm, pooled)
        residual_model = fe if fe is not None else pooled
        if residual_model is not None:
            self._attempt(tests, "cd_lm", doctor.cross_sectional_dependence,
                          residual_model, kind="lm")
            self._attempt(tests, "cd_pesaran", doctor.cross_sectional_dependence,
                          residual_model, kind="cd")
            self._attempt(tests, "serial_correlation", doctor.serial_correlation, residual_model)
        self._attempt(tests, "heteroskedasticity", doctor.heteroskedasticity,
                      self.panel, self.dependent, self.covariates)
        return tests

    def recommend(self, tests: dict) -> str:
        return self.doctor.recommend_model(
            tests.get("f_test"), tests.get("breusch_pagan_lm"), tests.get("hausman"),
            alpha=self.alpha,
        )

    def subsample_analysis(self, group_col: str, group_name, Y: str, X: list) -> dict:
        """
        Filters the panel on ``group_col == group_name`` and fits the models on
        that sub-sample only.
        """
        sub_modeler = PanelModeler(self.panel.subsample(group_col, group_name), alpha=self.alpha)
        return sub_modeler.run_panel_models(Y, X)
