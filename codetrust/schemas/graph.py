"""
Dependency Graph Schema
========================

Nodes and edges of the file-level dependency graph that confidence
deltas ripple across.

Design Decisions:
    - Edges point from the dependent to its dependency ("A imports B" is
      A → B); a change to B ripples to A
    - Edge weight lies in (0, 1]; a malformed edge fails validation here and
      is dropped (with a warning) by the graph store
    - Cycles are allowed

Data Flow:
    external static analysis → DependencyEdge → DependencyGraph → PropagationEngine
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, model_validator


class DependencyKind(str, Enum):
    """Relationship between two files, with its default ripple weight."""
    IMPORT = "import"
    CALL = "call"
    TYPE = "type"
    INHERIT = "inherit"

    @property
    def default_weight(self) -> float:
        return _DEFAULT_WEIGHTS[self]


_DEFAULT_WEIGHTS = {
    DependencyKind.IMPORT: 0.30,
    DependencyKind.CALL: 0.50,
    DependencyKind.TYPE: 0.40,
    DependencyKind.INHERIT: 0.70,
}


class FileNode(BaseModel):
    """A file in the dependency graph and its current confidence."""
    path: str = Field(min_length=1)
    score: float = Field(default=0.5, ge=0.0, le=1.0)


class DependencyEdge(BaseModel):
    """
    ``dependent`` relies on ``dependency``.

    Schema:
        {"dependent": "app.py", "dependency": "db.py",
         "kind": "import", "weight": 0.3}
    """
    dependent: str = Field(min_length=1)
    dependency: str = Field(min_length=1)
    kind: DependencyKind = Field(default=DependencyKind.IMPORT)
    weight: float = Field(gt=0.0, le=1.0, description="Ripple weight in (0, 1]")

    @model_validator(mode="after")
    def validate_not_self_loop(self) -> "DependencyEdge":
        if self.dependent == self.dependency:
            raise ValueError(f"Self-dependency on '{self.dependent}'")
        return self
