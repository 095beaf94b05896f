from __future__ import annotations

import typing as t

from rich.align import Align
from rich.console import Console
from rich.table import Table
from rich.theme import Theme

if t.TYPE_CHECKING:
    import pandas as pd

theme = Theme(
    {
        "passed": "green",
        "failed": "red",
        "errored": "bold red",
        "skipped": "yellow",
    }
)

console = Console(theme=theme)


def df_to_table(
    header: str,
    df: pd.DataFrame,
    show_index: bool = True,
    index_name: str = "Row",
    max_rows: t.Optional[int] = None,
) -> Table:
    """Convert a pandas.DataFrame obj into a rich.Table obj.

    Args:
        header: The table's title.
        df: A Pandas DataFrame to be converted to a rich Table.
        show_index: Add a column with the row's index to the table. Defaults to True.
        index_name: The column name to give to the index column.
        max_rows: When set, only the first `max_rows` rows are rendered and a caption
            reports how many were left out.

    Returns:
        Table: The rich Table instance populated with the DataFrame values.
    """
    total_rows = len(df)
    truncated = max_rows is not None and total_rows > max_rows

    rich_table = Table(
        title=f"[bold red]{header}[/bold red]",
        show_lines=True,
        min_width=60,
        caption=f"Showing {max_rows} of {total_rows} rows" if truncated else None,
    )
    if show_index:
        index_name = str(index_name) if index_name else ""
        rich_table.add_column(Align.center(index_name))

    for column in df.columns:
        column_name = column if isinstance(column, str) else ": ".join(str(col) for col in column)

        # Color coding the expected/actual columns of a diff
        lower = column_name.lower()
        if "expected" in lower:
            column_name = f"[green]{column_name}[/green]"
        elif "actual" in lower:
            column_name = f"[red]{column_name}[/red]"

        rich_table.add_column(Align.center(column_name))

    preview = df.head(max_rows) if truncated else df
    for index, value_list in zip(preview.index, preview.values.tolist()):
        row = [str(index)] if show_index else []
        row += [str(x) for x in value_list]
        rich_table.add_row(*[Align.center(x) for x in row])

    return rich_table
