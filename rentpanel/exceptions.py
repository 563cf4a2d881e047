class PanelError(Exception):
    """
    Base class for every error raised by rentpanel.
    """


class DataIntegrityError(PanelError, ValueError):
    """
    The input table cannot be used as a panel.
    """


class DuplicateKeyError(DataIntegrityError):
    """
    An (entity, time) pair occurs more than once.
    """
    def __init__(self, keys):
        self.keys = list(keys)
        shown = ", ".join(str(k) for k in self.keys[:5])
        more = "" if len(self.keys) <= 5 else f" (and {len(self.keys) - 5} more)"
        super().__init__(f"Duplicate (entity, time) keys: {shown}{more}")


class MissingColumnError(DataIntegrityError):
    """
    A required column is not present in the table.
    """
    def __init__(self, columns):
        self.columns = list(columns)
        super().__init__(f"Column(s) not found: {', '.join(map(str, self.columns))}")


class CollinearityError(PanelError, ValueError):
    """
    A covariate is absorbed by the entity effects.
    """
    def __init__(self, columns, message=None):
        self.columns = list(columns)
        if message is None:
            message = (
                "Covariate(s) without within-entity variation cannot be estimated "
                f"with entity fixed effects: {', '.join(map(str, self.columns))}"
            )
        super().__init__(message)


class DegenerateVarianceError(PanelError, ArithmeticError):
    """
    A variance-component estimate fell outside its valid range.
    """
    def __init__(self, component: str, estimate: float):
        self.component = component
        self.estimate = estimate
        super().__init__(f"Degenerate variance component {component}: {estimate:.6g}")


class ConvergenceFailure(PanelError, RuntimeError):
    """
    An iterative estimation step did not converge.
    """
    def __init__(self, iterations: int, change: float):
        self.iterations = iterations
        self.change = change
        super().__init__(
            f"Failed to converge after {iterations} iterations (last change {change:.3g})"
        )


class ShortPanelWarning(UserWarning):
    """
    The panel has too few periods for a time-series based test to be informative.
    """
