"""
Compiled graph — build the nodnod agent once, run it per event.

    pipeline = graph(FinalResultNode)
    node = await pipeline.run().inject(spec)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, cast
from collections.abc import Callable, Coroutine

from nodnod import Scope, EventLoopAgent, Node

from tender.graph._scope import TypedScope


@dataclass(slots=True)
class CompiledRun[T]:
    """One execution of a compiled graph with its injected inputs."""

    _target: type[T]
    _agent: EventLoopAgent
    _injections: tuple[tuple[type[Any], Any], ...]

    def inject(self, value: object) -> CompiledRun[T]:
        """Inject a value under its runtime type."""
        value_type = cast(type[Any], type(value))
        return CompiledRun(
            _target=self._target,
            _agent=self._agent,
            _injections=(*self._injections, (value_type, value)),
        )

    def __await__(self) -> Any:
        return self._execute().__await__()

    async def _execute(self) -> T:
        async with TypedScope(detail="compiled_run") as scope:
            for typ, value in self._injections:
                scope.inject(typ, value)

            run_method = cast(
                Callable[[Scope, dict[type[Any], Scope]], Coroutine[Any, Any, None]],
                getattr(self._agent, "run"),
            )
            await run_method(scope.inner, {})

            return scope.get(self._target)


@dataclass(slots=True, frozen=True)
class Compiled[T]:
    """
    Pre-compiled graph for repeated execution.

    Dependencies of the target node are discovered once, at compile time.
    """

    _target: type[T]
    _agent: EventLoopAgent

    def run(self) -> CompiledRun[T]:
        return CompiledRun(
            _target=self._target,
            _agent=self._agent,
            _injections=(),
        )


def graph[T](target: type[T]) -> Compiled[T]:
    """Pre-compile the graph that produces `target`."""
    all_nodes: set[type[Node[Any, Any]]] = {cast(type[Node[Any, Any]], target)}
    agent = EventLoopAgent.build(all_nodes)
    return Compiled(_target=target, _agent=agent)


__all__ = ("CompiledRun", "Compiled", "graph")
