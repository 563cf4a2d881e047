import argparse
import logging
import sys

from rentpanel import settings
from rentpanel.exceptions import DataIntegrityError, PanelError
from rentpanel.loader import load_panel_csv
from rentpanel.panel import PanelDataset
from rentpanel.panel_modeler import PanelModeler
from rentpanel.reporting import diagnostics_table, model_comparison_table, recommendation_text
from rentpanel.synthetic import generate_rent_panel

logger = logging.getLogger(__name__)

DEMO_COVARIATES = ["log_income", "log_population", "vacancy"]


def _parse_label(text: str):
    name, sep, label = text.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"Expected NAME=LABEL, got {text!r}")
    return name, label


def _parse_args(args=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="rentpanel",
        description="Pooled, fixed effects and random effects regressions on a city rent panel.",
    )
    parser.add_argument("csv", nargs="?", help="Comma-separated input file with a header row.")
    parser.add_argument("--demo", action="store_true", help="Use a generated city rent panel.")
    parser.add_argument("--entity", default="city", help="Entity column (default: city).")
    parser.add_argument("--time", default="year", help="Time column (default: year).")
    parser.add_argument("--dependent", default=None, help="Dependent variable.")
    parser.add_argument("--covariates", nargs="+", default=None, help="Covariate columns.")
    parser.add_argument("--log", nargs="+", default=[], metavar="COLUMN",
                        help="Add log_<COLUMN> companions before fitting.")
    parser.add_argument("--sep", default=",", help="Field delimiter.")
    parser.add_argument("--alpha", type=float, default=settings.SIGNIFICANCE_LEVEL,
                        help="Significance level for conclusions (default: %(default)s).")
    parser.add_argument("--label", action="append", type=_parse_label, default=[],
                        metavar="NAME=LABEL", help="Human-readable name for a variable.")
    parser.add_argument("--tablefmt", default=settings.DEFAULT_TABLEFMT,
                        help="tabulate table format (default: %(default)s).")
    parser.add_argument("--iterate", action="store_true",
                        help="Iterate the random effects variance components.")
    parser.add_argument("-v", "--verbose", action="count", default=0)
    parsed = parser.parse_args(args)
    if not parsed.demo and parsed.csv is None:
        parser.error("a CSV file is required unless --demo is given")
    if not parsed.demo and (parsed.dependent is None or not parsed.covariates):
        parser.error("--dependent and --covariates are required with a CSV file")
    return parsed


def _load(args) -> tuple:
    if args.demo:
        panel = PanelDataset(generate_rent_panel(), "city", "year")
        panel = panel.log_transform(["rent", "income", "population"])
        return panel, args.dependent or "log_rent", args.covariates or DEMO_COVARIATES
    panel = load_panel_csv(args.csv, args.entity, args.time, log_columns=args.log, sep=args.sep)
    return panel, args.dependent, args.covariates


def run(args) -> str:
    panel, dependent, covariates = _load(args)
    modeler = PanelModeler(panel, alpha=args.alpha)
    models = modeler.run_panel_models(dependent, covariates, re_iterate=args.iterate)
    if not models:
        raise DataIntegrityError("None of the models could be fitted.")

    labels = dict(args.label)
    sections = [repr(panel), model_comparison_table(list(models.values()),
                                                    covariate_labels=labels,
                                                    tablefmt=args.tablefmt)]
    for name, exc in modeler.errors.items():
        sections.append(f"{name} model not estimated: {exc}")

    tests = modeler.run_diagnostics()
    for name, exc in modeler.skipped_tests.items():
        sections.append(f"{name} test skipped: {exc}")
    sections.append(diagnostics_table(tests, alpha=args.alpha, tablefmt=args.tablefmt))
    sections.append(recommendation_text(modeler.recommend(tests)))
    return "\n\n".join(sections)


def main(argv=None) -> int:
    args = _parse_args(argv)
    level = logging.WARNING - 10 * min(args.verbose, 2)
    logging.basicConfig(level=level, format="%(asctime)s %(name)s %(levelname)s: %(message)s")
    try:
        print(run(args))
    except (PanelError, ValueError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
