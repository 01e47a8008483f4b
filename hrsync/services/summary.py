from __future__ import annotations

from hrsync.models.batch_state import BatchTotals

"""SUMMARY line rendering.

Format:
SUMMARY field={path} rows={processed}/{total} completed={c} skipped={s} failed={f} elapsed_sec={e}
"""


def _format_seconds(seconds: float) -> str:
    if seconds == 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return f"{seconds:.2f}"


def render_summary_line(field_path: str, total_rows: int, totals: BatchTotals, elapsed_seconds: float) -> str:
    """Render the SUMMARY line for a batch run or a history upload.

    >>> render_summary_line("root.work.title", 3, BatchTotals(2, 1, 0), 12.0)
    'SUMMARY field=root.work.title rows=3/3 completed=2 skipped=1 failed=0 elapsed_sec=12'
    """
    return (
        f"SUMMARY field={field_path} "
        f"rows={totals.processed}/{total_rows} "
        f"completed={totals.completed} "
        f"skipped={totals.skipped} "
        f"failed={totals.failed} "
        f"elapsed_sec={_format_seconds(elapsed_seconds)}"
    )
