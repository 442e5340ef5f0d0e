"""
Graph — declarative routing with nodnod.

    from tender import graph as G

    @G.node
    class FetchPayment:
        @classmethod
        async def __compose__(cls, spec: Spec) -> "FetchPayment":
            ...

    pipeline = G.graph(FinalNode)
    node = await pipeline.run().inject(spec)
"""

from nodnod import scalar_node as node

from tender.graph._scope import TypedScope
from tender.graph._compiled import (
    CompiledRun,
    Compiled,
    graph,
)

__all__ = (
    "node",
    "TypedScope",
    "graph",
    "Compiled",
    "CompiledRun",
)
