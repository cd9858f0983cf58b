from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import numpy as np
import pandas as pd

from .credible_intervals import CredibleInterval
from .model_selection import DicResult

CI_COLUMNS = ("CI_025", "CI_50", "CI_975")


@dataclass(frozen=True)
class ReportPaths:
    """Output tree of a post-processing report: report.md, tables/*.csv, figures/."""

    out_dir: Path

    @property
    def figures_dir(self) -> Path:
        return self.out_dir / "figures"

    @property
    def tables_dir(self) -> Path:
        return self.out_dir / "tables"

    @property
    def report_md(self) -> Path:
        return self.out_dir / "report.md"

    def table_csv(self, name: str) -> Path:
        return self.tables_dir / f"{name}.csv"


def write_markdown_report(*, paths: ReportPaths, markdown: str) -> None:
    paths.out_dir.mkdir(parents=True, exist_ok=True)
    paths.report_md.write_text(markdown, encoding="utf-8")


def _cell(v, digits: int) -> str:
    if isinstance(v, (float, np.floating)):
        return f"{float(v):.{digits}g}"
    return str(v)


def format_table(rows: list[list], headers: list[str], *, digits: int = 6) -> str:
    """Markdown table; floats are printed with `digits` significant digits."""
    if not headers:
        raise ValueError("headers must be non-empty")
    cells = []
    for r in rows:
        if len(r) != len(headers):
            raise ValueError(f"Row has {len(r)} cells, expected {len(headers)}.")
        cells.append([_cell(v, digits) for v in r])
    widths = [max([len(h)] + [len(c[j]) for c in cells]) for j, h in enumerate(headers)]

    def line(values):
        return "| " + " | ".join(v.ljust(w) for v, w in zip(values, widths, strict=True)) + " |"

    out = [line(list(headers)), "| " + " | ".join("-" * w for w in widths) + " |"]
    out.extend(line(c) for c in cells)
    return "\n".join(out)


def interval_frame(ci: CredibleInterval, *, index_names: tuple[str, ...] | None = None) -> pd.DataFrame:
    """Long-format table of an interval: one row per grid coordinate (1-based)."""
    cols = [np.atleast_1d(np.asarray(getattr(ci, f), dtype=float)) for f in ("lower", "median", "upper")]
    shape = cols[0].shape
    if index_names is None:
        index_names = tuple(f"axis{j}" for j in range(len(shape)))
    if len(index_names) != len(shape):
        raise ValueError(f"index_names must name {len(shape)} axes.")
    idx = pd.MultiIndex.from_tuples(
        [tuple(int(c) + 1 for c in coord) for coord in np.ndindex(shape)],
        names=list(index_names),
    )
    return pd.DataFrame({name: c.reshape(-1) for name, c in zip(CI_COLUMNS, cols, strict=True)}, index=idx)


def interval_table(ci: CredibleInterval, *, index_names: tuple[str, ...] | None = None, digits: int = 4) -> str:
    df = interval_frame(ci, index_names=index_names)
    rows = [[", ".join(str(v) for v in key)] + [float(x) for x in vals] for key, vals in zip(df.index, df.to_numpy())]
    return format_table(rows, [", ".join(df.index.names)] + list(df.columns), digits=digits)


def compare_models(results: Mapping[str, DicResult]) -> pd.DataFrame:
    """Rank models by DIC (lowest first) with the difference to the best model."""
    if len(results) == 0:
        raise ValueError("results must be non-empty")
    df = pd.DataFrame.from_dict({k: v.to_jsonable() for k, v in results.items()}, orient="index")
    df.index.name = "model"
    df = df.sort_values("dic", kind="stable")
    df["delta_dic"] = df["dic"] - float(df["dic"].iloc[0])
    return df


def write_summary_report(
    *,
    paths: ReportPaths,
    intervals: Mapping[str, CredibleInterval] | None = None,
    models: Mapping[str, DicResult] | None = None,
    title: str = "Posterior summary",
) -> Path:
    """Write one CSV per summary under tables/ and a markdown overview in report.md."""
    paths.tables_dir.mkdir(parents=True, exist_ok=True)
    parts = [f"# {title}", ""]
    if models:
        df = compare_models(models)
        df.to_csv(paths.table_csv("model_comparison"))
        parts += ["## Model comparison (DIC)", ""]
        parts.append(
            format_table(
                [[name] + [row[c] for c in ("dic", "p_d", "delta_dic")] for name, row in df.iterrows()],
                ["model", "DIC", "p_D", "delta DIC"],
            )
        )
        parts.append("")
    for name, ci in (intervals or {}).items():
        interval_frame(ci).to_csv(paths.table_csv(name))
        parts += [f"## {name}", "", f"Table: `tables/{name}.csv`"]
        if np.ndim(ci.lower) == 0:
            parts += ["", interval_table(ci, index_names=(name,))]
        parts.append("")
    write_markdown_report(paths=paths, markdown="\n".join(parts))
    return paths.report_md
