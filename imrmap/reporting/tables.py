"""LaTeX export of result tables (no row index)."""
from __future__ import annotations

import re
import textwrap
from pathlib import Path
from typing import Optional, Union

import pandas as pd


def _latex_safe_label(stem: str) -> str:
    s = re.sub(r'[^A-Za-z0-9]+', '-', stem).strip('-').lower()
    return f"tab:{s}" if s else "tab:table"


def _latex_caption_from_filename(stem: str) -> str:
    return re.sub(r'[_\-]+', ' ', stem).strip().title()


def write_latex_table(
    df: pd.DataFrame,
    path: Union[str, Path],
    *,
    caption: Optional[str] = None,
    label: Optional[str] = None,
    fontsize: Optional[str] = None,
) -> Path:
    """
    Write ``df`` as a booktabs LaTeX table wrapped in a ``table`` float.

    Args:
        df: Table to write; the index is never printed
        path: Output .tex path
        caption: Caption (derived from the file name if omitted)
        label: LaTeX label (derived from the file name if omitted)
        fontsize: Optional size command such as "small"

    Returns:
        Path written
    """
    out = Path(path).with_suffix('.tex')
    out.parent.mkdir(parents=True, exist_ok=True)
    stem = out.stem

    if caption is None:
        caption = _latex_caption_from_filename(stem)
    if label is None:
        label = _latex_safe_label(stem)

    body = df.to_latex(
        index=False, escape=True, na_rep="",
        column_format='l' * len(df.columns),
    )

    env_open = textwrap.dedent(f"""
    % Auto-generated table: {stem}
    \\begin{{table}}[htbp]
    \\centering
    \\caption{{{caption}}}
    \\label{{{label}}}
    """).strip("\n")
    parts = [env_open]
    if fontsize:
        parts.append(f"\\{fontsize}")
    parts.append(body.rstrip("\n"))
    parts.append("\\end{table}\n")

    out.write_text("\n".join(parts), encoding="utf-8")
    print(f"  ✓ {out.name}")
    return out
