import pytest

from rentpanel.cli import main

from tests.conftest import make_panel


def test_demo_run(capsys):
    assert main(["--demo", "--label", "log_income=Log income"]) == 0
    out = capsys.readouterr().out
    assert "Pooled OLS" in out
    assert "Log income" in out
    assert "Hausman" in out
    assert "Recommended model:" in out


def test_csv_run(tmp_path, rent_frame, capsys):
    path = tmp_path / "rents.csv"
    rent_frame[["city", "year", "rent", "income", "vacancy"]].to_csv(path, index=False)
    code = main([
        str(path), "--dependent", "log_rent", "--covariates", "log_income", "vacancy",
        "--log", "rent", "income", "--tablefmt", "github", "--alpha", "0.1",
    ])
    assert code == 0
    out = capsys.readouterr().out
    assert "Conclusion (alpha=0.1)" in out
    assert "| Observations" in out


def test_missing_file_exits_with_error(tmp_path):
    code = main([str(tmp_path / "missing.csv"), "--dependent", "y", "--covariates", "x"])
    assert code == 1


def test_missing_column_exits_with_error(tmp_path, rent_frame):
    path = tmp_path / "rents.csv"
    rent_frame.to_csv(path, index=False)
    assert main([str(path), "--entity", "municipality", "--dependent", "rent",
                 "--covariates", "income"]) == 1


def test_arguments_required():
    with pytest.raises(SystemExit):
        main([])
    with pytest.raises(SystemExit):
        main(["data.csv"])
    with pytest.raises(SystemExit):
        main(["--demo", "--label", "no-equals-sign"])


def test_single_period_panel_reports_skipped_tests(tmp_path, capsys):
    path = tmp_path / "one_year.csv"
    make_panel(n_periods=1, seed=6).to_csv(path, index=False)
    code = main([str(path), "--entity", "entity", "--time", "period",
                 "--dependent", "y", "--covariates", "x1", "x2"])
    assert code == 0
    out = capsys.readouterr().out
    assert "Pooled OLS" in out
    assert "fixed-effects model not estimated" in out
    assert "breusch_pagan_lm test skipped" in out


def test_text_time_column_run(tmp_path, capsys):
    frame = make_panel(seed=4)
    frame["period"] = "Y" + frame["period"].astype(str)
    path = tmp_path / "text_periods.csv"
    frame.to_csv(path, index=False)
    code = main([str(path), "--entity", "entity", "--time", "period",
                 "--dependent", "y", "--covariates", "x1", "x2"])
    assert code == 0
    assert "Hausman" in capsys.readouterr().out


def test_invalid_formula_exits_with_error(tmp_path):
    path = tmp_path / "panel.csv"
    make_panel(seed=4).to_csv(path, index=False)
    assert main([str(path), "--entity", "entity", "--time", "period",
                 "--dependent", "y", "--covariates", "y", "x1"]) == 1
