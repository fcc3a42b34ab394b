"""
Export stage: the named outputs handed back to the invoking tool.
"""

import asyncio
from collections.abc import Mapping
from typing import Any, Iterator

from funcstack.core.cell import Cell, as_cell
from funcstack.core.errors import CompositionError, UnresolvedOutputError


class ExportMap(Mapping):
    """
    Ordered mapping of output name to cell.

    The map is returned before every cell has resolved; callers use
    ``wait`` or ``collect`` to read final values.

    Example:
        exports = build_function_stack(stack, options)
        stack.provision()
        values = await exports.wait(timeout=600)
    """

    def __init__(self):
        self._cells: dict[str, Cell[Any]] = {}

    def add(self, name: str, value: Cell[Any] | Any) -> Cell[Any]:
        """
        Add an export; literals are wrapped in resolved cells.

        Raises:
            CompositionError: If an export with the same name exists
        """
        if name in self._cells:
            raise CompositionError(f"Export '{name}' is already declared")
        cell = as_cell(value)
        self._cells[name] = cell
        return cell

    def __getitem__(self, name: str) -> Cell[Any]:
        return self._cells[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._cells)

    def __len__(self) -> int:
        return len(self._cells)

    def pending(self) -> list[str]:
        """Names of exports that have not settled."""
        return [name for name, cell in self._cells.items() if cell.is_pending]

    def failed(self) -> dict[str, BaseException]:
        """Failed exports with their originating failures."""
        return {
            name: cell.failure
            for name, cell in self._cells.items()
            if cell.is_failed
        }

    def is_settled(self) -> bool:
        return not self.pending()

    def collect(self) -> dict[str, Any]:
        """
        Read every export.

        Raises:
            Exception: The originating failure of the first failed export
            UnresolvedOutputError: If an export has not settled yet
        """
        for name, cell in self._cells.items():
            if cell.is_failed:
                raise cell.failure
        for name, cell in self._cells.items():
            if cell.is_pending:
                raise UnresolvedOutputError(name)
        return {name: cell.get() for name, cell in self._cells.items()}

    async def wait(self, timeout: float | None = None) -> dict[str, Any]:
        """
        Wait until every export settles, then collect them.

        Raises:
            asyncio.TimeoutError: If ``timeout`` elapses first
        """
        loop = asyncio.get_running_loop()
        futures = [cell.to_future(loop) for cell in self._cells.values()]
        if futures:
            await asyncio.wait_for(
                asyncio.gather(*futures, return_exceptions=True),
                timeout=timeout,
            )
        return self.collect()

    def __repr__(self) -> str:
        return f"ExportMap({', '.join(self._cells)})"
