"""
Algorithm catalog API routes.

Lists every algorithm the engine can produce steps for, grouped by family,
with the parameters each one reads from a request.
"""

from fastapi import APIRouter

from engine.models.grid import HEURISTICS
from engine.models.maze import MAZE_GENERATORS
from engine.producers.tree import STRUCTURES
from engine.registry import catalog_dict, parse_family
from engine.validation import ORDERINGS

router = APIRouter()


@router.get("/algorithms")
async def list_algorithms():
    """List all algorithms grouped by family, plus the option vocabularies."""
    return {
        "families": catalog_dict(),
        "options": {
            "heuristics": list(HEURISTICS),
            "tree_structures": list(STRUCTURES),
            "array_orderings": list(ORDERINGS),
            "maze_generators": list(MAZE_GENERATORS),
        },
    }


@router.get("/algorithms/{family}")
async def list_family_algorithms(family: str):
    """List the algorithms of one family (sorting, pathfinding, tree, graph)."""
    parsed = parse_family(family)
    return {"family": parsed.value, "algorithms": catalog_dict(parsed)[parsed.value]}
