import numpy as np
from tabulate import tabulate

from rentpanel import settings

MODEL_LABELS = {
    "pooled": "Pooled OLS",
    "fixed-effects": "Fixed Effects",
    "random-effects": "Random Effects",
}
CONSTANT_LABEL = "Constant"


def significance_stars(p_value, levels=settings.STAR_LEVELS) -> str:
    """
    One star for every threshold in ``levels`` that ``p_value`` falls below.

    With the default levels: ``*`` p < 0.1, ``**`` p < 0.05, ``***`` p < 0.01.
    Pass more levels for finer bands.
    """
    if p_value is None or np.isnan(p_value):
        return ""
    return "*" * sum(1 for level in levels if p_value < level)


def star_note(levels=settings.STAR_LEVELS) -> str:
    ordered = sorted(levels, reverse=True)
    return "Note: " + "; ".join(f"{'*' * (i + 1)}p<{level:g}" for i, level in enumerate(ordered))


def _fmt(value, digits: int) -> str:
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return ""
    return f"{value:.{digits}f}"


def _as_labeled(models, model_labels):
    if isinstance(models, dict):
        labeled = list(models.items())
    else:
        labeled = [(MODEL_LABELS.get(m.model_type, m.model_type), m) for m in models]
    if model_labels is not None:
        model_labels = list(model_labels)
        if len(model_labels) != len(labeled):
            raise ValueError("model_labels must have one entry per model.")
        labeled = [(label, m) for label, (_, m) in zip(model_labels, labeled)]
    return labeled


def _param_order(models) -> list:
    order = []
    for model in models:
        for name in model.params.index:
            if name not in order and name != "const":
                order.append(name)
    if any(model.has_constant for model in models):
        order.append("const")
    return order


def model_comparison_table(models, model_labels=None, covariate_labels=None,
                           tablefmt: str = settings.DEFAULT_TABLEFMT,
                           digits: int = settings.DEFAULT_DIGITS,
                           levels=settings.STAR_LEVELS) -> str:
    """
    Side-by-side table of fitted models.

    Each covariate gets its coefficient with significance stars and, on the
    row below, its standard error in parentheses. Model statistics follow.

    Parameters
    ----------
    models : list of FittedModel or dict of {label: FittedModel}
    model_labels : list, optional
        Column headers overriding the defaults.
    covariate_labels : dict, optional
        Human-readable names keyed by internal variable name.
    tablefmt : str
        Any ``tabulate`` format (``"simple"``, ``"github"``, ``"latex"``, ``"html"``...).
    """
    labeled = _as_labeled(models, model_labels)
    if not labeled:
        raise ValueError("No models to report.")
    fitted = [m for _, m in labeled]
    covariate_labels = dict(covariate_labels or {})
    covariate_labels.setdefault("const", CONSTANT_LABEL)

    rows = []
    for name in _param_order(fitted):
        coef_row = [covariate_labels.get(name, name)]
        se_row = [""]
        for model in fitted:
            if name in model.params.index:
                stars = significance_stars(model.pvalues[name], levels)
                coef_row.append(_fmt(model.params[name], digits) + stars)
                se_row.append(f"({_fmt(model.std_errors[name], digits)})")
            else:
                coef_row.append("")
                se_row.append("")
        rows.extend([coef_row, se_row])

    rows.append(["Observations"] + [str(m.nobs) for m in fitted])
    rows.append(["Entities"] + ["" if m.n_entities is None else str(m.n_entities) for m in fitted])
    rows.append(["R²"] + [_fmt(m.rsquared, digits) for m in fitted])
    rows.append(["Adjusted R²"] + [_fmt(m.rsquared_adj, digits) for m in fitted])
    rows.append(["Residual df"] + [str(m.df_resid) for m in fitted])

    dependents = {m.dependent for m in fitted}
    dependent = ", ".join(sorted(covariate_labels.get(d, d) for d in dependents))
    headers = [f"Dependent variable: {dependent}"] + [label for label, _ in labeled]
    table = tabulate(rows, headers, tablefmt=tablefmt, disable_numparse=True)
    return f"{table}\n{star_note(levels)}"


def _fmt_df(df) -> str:
    if not df:
        return ""
    return ", ".join(str(d) for d in df)


def diagnostics_table(results, alpha: float = settings.SIGNIFICANCE_LEVEL,
                      tablefmt: str = settings.DEFAULT_TABLEFMT,
                      digits: int = settings.DEFAULT_DIGITS) -> str:
    """
    One row per DiagnosticResult: statistic, degrees of freedom, p-value and
    the conclusion at ``alpha``.
    """
    if isinstance(results, dict):
        results = list(results.values())
    rows = [
        [r.test, _fmt(r.statistic, digits), _fmt_df(r.df), _fmt(r.p_value, 4), r.conclusion(alpha)]
        for r in results
    ]
    headers = ["Test", "Statistic", "df", "p-value", f"Conclusion (alpha={alpha:g})"]
    return tabulate(rows, headers, tablefmt=tablefmt, disable_numparse=True)


def recommendation_text(model_type: str) -> str:
    return f"Recommended model: {MODEL_LABELS.get(model_type, model_type)}"
