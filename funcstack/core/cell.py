"""
Value cells: deferred, single-assignment values.

A Cell stands for a property that is not known when the stack is declared,
such as the generated name of a storage account or its access key. Cells
compose without blocking: ``transform`` and ``combine`` return new cells
whose values are computed once their sources resolve.

Each cell also records which resource nodes it was derived from. The
resolver reads these dependency sets to build the resource graph before any
backend call is made.

A backend may resolve a cell to a value that is itself deferred, such as a
Pulumi ``Output`` during a preview. Derived cells then map over it with its
own ``apply`` instead of reading it directly.
"""

import asyncio
from enum import Enum
from typing import Any, Callable, Generic, Iterable, TypeVar

from funcstack.core.errors import AlreadyResolvedError, UnresolvedOutputError

T = TypeVar("T")
U = TypeVar("U")


class CellState(str, Enum):
    """Settlement state of a cell."""

    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"


def _ignore_failure(error: BaseException) -> None:
    """Default error callback; the failure stays recorded on the cell."""


def is_deferred(value: Any) -> bool:
    """True for values a backend resolves later and exposes through ``apply``."""
    return not isinstance(value, (str, bytes)) and callable(getattr(value, "apply", None))


def call_deferred(f: Callable[..., U], args: tuple) -> Any:
    """
    Call ``f(*args)``, mapping over any deferred arguments.

    Plain arguments give a plain result. Each deferred argument is replaced
    through its ``apply``, so the result is deferred as well.
    """
    for index, arg in enumerate(args):
        if is_deferred(arg):
            return arg.apply(
                lambda value: call_deferred(f, args[:index] + (value,) + args[index + 1:])
            )
    return f(*args)


class Cell(Generic[T]):
    """
    A value that resolves at most once.

    Subscribers run in the order they subscribed, immediately after the
    cell settles. Subscribing to a settled cell runs the callback right away.

    Example:
        name = Cell(dependencies={"storage"})
        url = name.transform(lambda n: f"https://{n}.blob.core.windows.net")

        name.resolve("stdev12345678")
        url.get()  # 'https://stdev12345678.blob.core.windows.net'
    """

    def __init__(self, dependencies: Iterable[str] = (), label: str | None = None):
        self.dependencies: frozenset[str] = frozenset(dependencies)
        self.label = label
        self._state = CellState.PENDING
        self._value: Any = None
        self._failure: BaseException | None = None
        self._subscribers: list[
            tuple[Callable[[Any], None], Callable[[BaseException], None]]
        ] = []

    @classmethod
    def of(cls, value: T, label: str | None = None) -> "Cell[T]":
        """Create a cell that is already resolved to a literal value."""
        cell: Cell[T] = cls(label=label)
        cell.resolve(value)
        return cell

    @property
    def state(self) -> CellState:
        return self._state

    @property
    def is_pending(self) -> bool:
        return self._state is CellState.PENDING

    @property
    def is_resolved(self) -> bool:
        return self._state is CellState.RESOLVED

    @property
    def is_failed(self) -> bool:
        return self._state is CellState.FAILED

    @property
    def failure(self) -> BaseException | None:
        """The originating exception if the cell failed."""
        return self._failure

    def resolve(self, value: T) -> None:
        """
        Set the value of the cell.

        Raises:
            AlreadyResolvedError: If the cell has already resolved or failed
        """
        if self._state is not CellState.PENDING:
            raise AlreadyResolvedError(self.label)
        self._value = value
        self._state = CellState.RESOLVED
        self._notify()

    def fail(self, error: BaseException) -> None:
        """
        Settle the cell as permanently failed.

        Raises:
            AlreadyResolvedError: If the cell has already resolved or failed
        """
        if self._state is not CellState.PENDING:
            raise AlreadyResolvedError(self.label)
        self._failure = error
        self._state = CellState.FAILED
        self._notify()

    def get(self) -> T:
        """
        Read the resolved value.

        Raises:
            UnresolvedOutputError: If the cell is still pending
            Exception: The originating failure if the cell failed
        """
        if self._state is CellState.RESOLVED:
            return self._value
        if self._state is CellState.FAILED:
            raise self._failure
        raise UnresolvedOutputError(self.label)

    def subscribe(
        self,
        on_value: Callable[[T], None],
        on_error: Callable[[BaseException], None] = _ignore_failure,
    ) -> None:
        """Register continuations for resolution and failure."""
        if self._state is CellState.PENDING:
            self._subscribers.append((on_value, on_error))
        else:
            self._dispatch(on_value, on_error)

    def on_settled(self, callback: Callable[["Cell[T]"], None]) -> None:
        """Register a callback that receives this cell once it settles."""
        self.subscribe(lambda _: callback(self), lambda _: callback(self))

    def transform(self, f: Callable[[T], U], label: str | None = None) -> "Cell[U]":
        """
        Derive a new cell whose value is ``f(value)``.

        ``f`` runs once, after this cell resolves. If this cell fails the
        derived cell fails with the same exception; if ``f`` raises, the
        derived cell fails with that exception instead. A deferred value is
        mapped with its own ``apply``.
        """
        derived: Cell[U] = Cell(self.dependencies, label=label or self.label)

        def on_value(value: T) -> None:
            try:
                result = call_deferred(f, (value,))
            except Exception as e:
                derived.fail(e)
                return
            derived.resolve(result)

        self.subscribe(on_value, derived.fail)
        return derived

    def combine(
        self,
        other: "Cell[Any] | Any",
        f: Callable[[T, Any], U],
        label: str | None = None,
    ) -> "Cell[U]":
        """Derive a cell from this cell and ``other``, once both resolve."""
        return Cell.gather(self, other, label=label).transform(lambda pair: call_deferred(f, pair))

    @classmethod
    def gather(cls, *cells: "Cell[Any] | Any", label: str | None = None) -> "Cell[tuple]":
        """
        Combine any number of cells into a cell holding a tuple of their values.

        Values appear in argument order regardless of the order the sources
        resolve in. The gathered cell fails with the first failure observed.
        Literal arguments are treated as resolved cells.
        """
        sources = [as_cell(c) for c in cells]
        dependencies = frozenset().union(*(c.dependencies for c in sources))
        gathered: Cell[tuple] = cls(dependencies, label=label)

        if not sources:
            gathered.resolve(())
            return gathered

        values: list[Any] = [None] * len(sources)
        remaining = len(sources)

        def on_value_at(index: int) -> Callable[[Any], None]:
            def on_value(value: Any) -> None:
                nonlocal remaining
                if not gathered.is_pending:
                    return
                values[index] = value
                remaining -= 1
                if remaining == 0:
                    gathered.resolve(tuple(values))
            return on_value

        def on_error(error: BaseException) -> None:
            if gathered.is_pending:
                gathered.fail(error)

        for index, source in enumerate(sources):
            source.subscribe(on_value_at(index), on_error)

        return gathered

    @classmethod
    def format(cls, template: str, label: str | None = None, **kwargs: Any) -> "Cell[str]":
        """
        ``str.format`` over a mix of literals and cells.

        Example:
            url = Cell.format("https://{host}", host=app.output("default_host_name"))
        """
        names = list(kwargs)
        return cls.gather(*(kwargs[name] for name in names), label=label).transform(
            lambda values: call_deferred(
                lambda *parts: template.format(**dict(zip(names, parts))), values
            )
        )

    def to_future(self, loop: asyncio.AbstractEventLoop | None = None) -> asyncio.Future:
        """
        Adapt the cell to an asyncio future on ``loop``.

        Defaults to the running loop, so call it from a coroutine or pass
        the loop explicitly.
        """
        loop = loop or asyncio.get_running_loop()
        future = loop.create_future()

        def on_value(value: T) -> None:
            if not future.done():
                future.set_result(value)

        def on_error(error: BaseException) -> None:
            if not future.done():
                future.set_exception(error)

        self.subscribe(on_value, on_error)
        return future

    def _notify(self) -> None:
        subscribers, self._subscribers = self._subscribers, []
        for on_value, on_error in subscribers:
            self._dispatch(on_value, on_error)

    def _dispatch(
        self,
        on_value: Callable[[Any], None],
        on_error: Callable[[BaseException], None],
    ) -> None:
        if self._state is CellState.RESOLVED:
            on_value(self._value)
        else:
            on_error(self._failure)

    def __repr__(self) -> str:
        label = f"'{self.label}', " if self.label else ""
        return f"Cell({label}state={self._state.value})"


def as_cell(value: Any) -> Cell[Any]:
    """Wrap a literal in a resolved cell; cells pass through unchanged."""
    if isinstance(value, Cell):
        return value
    return Cell.of(value)


def collect_cells(value: Any) -> list[Cell[Any]]:
    """
    Find every cell inside a property value.

    Searches lists, tuples and dict values recursively, in order.
    """
    if isinstance(value, Cell):
        return [value]
    if isinstance(value, dict):
        found: list[Cell[Any]] = []
        for item in value.values():
            found.extend(collect_cells(item))
        return found
    if isinstance(value, (list, tuple)):
        found = []
        for item in value:
            found.extend(collect_cells(item))
        return found
    return []


def unwrap(value: Any) -> Any:
    """
    Replace every cell inside a property value with its resolved value.

    Raises:
        UnresolvedOutputError: If a cell has not resolved yet
    """
    if isinstance(value, Cell):
        return value.get()
    if isinstance(value, dict):
        return {key: unwrap(item) for key, item in value.items()}
    if isinstance(value, list):
        return [unwrap(item) for item in value]
    if isinstance(value, tuple):
        return tuple(unwrap(item) for item in value)
    return value
