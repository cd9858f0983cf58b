import numpy as np
import pytest

from fmmm_posterior.credible_intervals import pointwise_interval, sigma_ci, simultaneous_band
from fmmm_posterior.model_selection import DicResult
from fmmm_posterior.report import (
    ReportPaths,
    compare_models,
    format_table,
    interval_frame,
    interval_table,
    write_markdown_report,
    write_summary_report,
)


def _dic(value):
    return DicResult(dic=value, mean_deviance=value - 5.0, deviance_at_mean=value - 10.0, p_d=5.0, n_draws=100)


def test_compare_models_sorts_by_dic():
    df = compare_models({"K=2": _dic(120.0), "K=3": _dic(110.0), "K=4": _dic(115.5)})
    assert list(df.index) == ["K=3", "K=4", "K=2"]
    np.testing.assert_allclose(df["delta_dic"].to_numpy(), [0.0, 5.5, 10.0])

    with pytest.raises(ValueError):
        compare_models({})


def test_interval_tables():
    draws = np.random.default_rng(0).normal(size=(50, 2, 3))
    frame = interval_frame(pointwise_interval(draws), index_names=("t1", "t2"))
    assert frame.shape == (6, 3)
    assert frame.index[0] == (1, 1)
    assert list(frame.columns) == ["CI_025", "CI_50", "CI_975"]

    md = interval_table(sigma_ci(np.linspace(1.0, 2.0, 40)), index_names=("sigma",))
    lines = md.splitlines()
    assert len(lines) == 3
    assert "CI_975" in lines[0]

    with pytest.raises(ValueError):
        format_table([[1, 2]], ["a"])


def test_write_markdown_report(tmp_path):
    paths = ReportPaths(out_dir=tmp_path / "out")
    table = format_table([["K=2", 1.0]], ["model", "dic"])
    write_markdown_report(paths=paths, markdown="# DIC\n\n" + table + "\n")
    assert paths.report_md.read_text(encoding="utf-8").startswith("# DIC")


def test_summary_report_writes_tables(tmp_path):
    paths = ReportPaths(out_dir=tmp_path)
    draws = np.random.default_rng(1).normal(size=(40, 5))
    out = write_summary_report(
        paths=paths,
        intervals={"mean_cluster1": pointwise_interval(draws), "sigma": sigma_ci(np.linspace(0.5, 1.0, 40))},
        models={"K=2": _dic(120.0), "K=3": _dic(110.0)},
    )
    text = out.read_text(encoding="utf-8")
    assert "## Model comparison (DIC)" in text
    assert "| K=3" in text
    assert paths.table_csv("mean_cluster1").is_file()
    assert paths.table_csv("model_comparison").is_file()
    assert text.index("K=3") < text.index("K=2")


def test_plots_are_written(tmp_path):
    pytest.importorskip("matplotlib")
    from fmmm_posterior.viz import save_band_plot, save_surface_plot

    time = np.linspace(0.0, 1.0, 12)
    draws = np.random.default_rng(2).normal(size=(30, 12))
    band_path = tmp_path / "figures" / "band.png"
    save_band_plot(time, simultaneous_band(draws), band_path, title="cluster 1")
    assert band_path.is_file()

    surface_path = tmp_path / "figures" / "surface.png"
    save_surface_plot(time, time[:5], np.ones((12, 5)), surface_path)
    assert surface_path.is_file()

    with pytest.raises(ValueError):
        save_band_plot(time[:4], simultaneous_band(draws), tmp_path / "bad.png")
