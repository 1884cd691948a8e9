from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import logging
import pandas

from enginesql.backend.models import Column
from enginesql.types import Row

logger = logging.getLogger(__name__)


class ResultSet:
    """
    Read-only view over the rows of a finished query.

    The whole result is buffered by the query session before this object is
    created, so fetching never touches the network.
    """

    def __init__(
        self,
        rows: List[Row],
        columns: Optional[List[Column]] = None,
        query_id: Optional[str] = None,
        arraysize: int = 10000,
    ):
        """
        Parameters:
            :param rows: Every row the engine returned, in arrival order
            :param columns: Column metadata reported by the engine, if any
            :param query_id: The engine's id for the query
            :param arraysize: The default number of rows returned by fetchmany (PEP-249)
        """

        self._rows = rows
        self.columns = columns or []
        self.query_id = query_id
        self.arraysize = arraysize
        self._next_row_index = 0

    def __iter__(self):
        while True:
            row = self.fetchone()
            if row is not None:
                yield row
            else:
                break

    def __len__(self) -> int:
        return len(self._rows)

    @property
    def rownumber(self) -> int:
        return self._next_row_index

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]

    @property
    def description(self) -> List[Tuple]:
        """PEP-249 description: (name, type_code, display_size, internal_size, precision, scale, null_ok)"""
        return [
            (column.name, column.type, None, None, None, None, None)
            for column in self.columns
        ]

    @property
    def rows(self) -> List[Row]:
        return list(self._rows)

    def fetchone(self) -> Optional[Row]:
        """
        Fetch the next row of the result set, returning a single row,
        or None when no more data is available.
        """
        if self._next_row_index >= len(self._rows):
            return None
        row = self._rows[self._next_row_index]
        self._next_row_index += 1
        return row

    def fetchmany(self, size: Optional[int] = None) -> List[Row]:
        """
        Fetch the next set of rows of the result set, returning a list of rows.

        An empty list is returned when no more rows are available.
        """
        if size is None:
            size = self.arraysize
        if size < 0:
            raise ValueError("size argument for fetchmany is %s but must be >= 0" % size)

        start = self._next_row_index
        batch = self._rows[start : start + size]
        self._next_row_index += len(batch)
        return batch

    def fetchall(self) -> List[Row]:
        """Fetch all (remaining) rows of the result set."""
        batch = self._rows[self._next_row_index :]
        self._next_row_index = len(self._rows)
        return batch

    def as_dicts(self) -> List[Dict[str, Any]]:
        """Every row keyed by column name. Requires column metadata."""
        names = self.column_names
        if not names:
            raise ValueError("The engine did not report column metadata for this result")
        return [dict(zip(names, row)) for row in self._rows]

    def to_pandas(self) -> pandas.DataFrame:
        """Every row as a DataFrame, columns named after the engine's metadata when present."""
        return pandas.DataFrame(self._rows, columns=self.column_names or None)
