"""
Bayesian Network Arena
=======================

Discrete Bayesian network stored as an index-addressed arena: every node
is an integer id, parents are lists of ids, and each node owns a CPT
ndarray of shape ``(card(parent_1), ..., card(parent_k), card(node))``.

Design Decisions:
    - Integer ids instead of linked node objects, so belief propagation can
      iterate over cyclic structures without ownership cycles
    - Parents may be declared after a node exists (``set_cpt``), which is
      how directed cycles are expressed
    - The model is the normalized product of all CPT factors; for an
      acyclic net that is exactly the Bayesian-network joint

Usage:
    net = BayesNet()
    rain = net.add_node("rain", cpt=[0.8, 0.2])
    net.add_node("wet", parents=["rain"], cpt=[[0.9, 0.1], [0.2, 0.8]])
    net.validate()
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Union

import numpy as np

from codetrust.errors import InvalidNetwork, UnknownNode

logger = logging.getLogger("codetrust.bayes.network")

NodeRef = Union[int, str]

DEFAULT_STATES = ("false", "true")


@dataclass
class Node:
    """One discrete variable in the arena."""
    id: int
    name: str
    states: tuple[str, ...]
    parents: tuple[int, ...] = ()
    cpt: Optional[np.ndarray] = field(default=None, repr=False)

    @property
    def cardinality(self) -> int:
        return len(self.states)


class BayesNet:
    """
    Index-addressed discrete Bayesian network.

    Args:
        epsilon: Allowed deviation of a CPT row sum from 1.0.
    """

    def __init__(self, epsilon: float = 1e-6):
        self.epsilon = epsilon
        self._nodes: list[Node] = []
        self._index: dict[str, int] = {}
        self._children: list[list[int]] = []

    # ── Construction ───────────────────────────────────────────────

    def add_node(
        self,
        name: str,
        states: Sequence[str] = DEFAULT_STATES,
        parents: Sequence[NodeRef] = (),
        cpt: Any = None,
    ) -> int:
        """
        Add a node and return its id.

        If ``cpt`` is given the parents must already exist; otherwise call
        ``set_cpt`` later (possibly after adding the parents).
        """
        if name in self._index:
            raise InvalidNetwork(f"Duplicate node name: {name!r}")
        if len(states) < 2:
            raise InvalidNetwork(f"Node {name!r} needs at least 2 states, got {len(states)}")
        if len(set(states)) != len(states):
            raise InvalidNetwork(f"Node {name!r} has duplicate state names")

        node_id = len(self._nodes)
        self._nodes.append(Node(id=node_id, name=name, states=tuple(states)))
        self._index[name] = node_id
        self._children.append([])

        if cpt is not None or parents:
            self.set_cpt(node_id, parents, cpt)
        return node_id

    def set_cpt(self, node: NodeRef, parents: Sequence[NodeRef], cpt: Any) -> None:
        """
        Set (or replace) a node's parents and conditional probability table.

        Args:
            node: Node id or name.
            parents: Parent ids or names, in CPT axis order.
            cpt: Array-like of shape parent cardinalities + (own cardinality,).
        """
        node_id = self.resolve(node)
        parent_ids = tuple(self.resolve(p) for p in parents)
        if node_id in parent_ids:
            raise InvalidNetwork(f"Node {self._nodes[node_id].name!r} cannot be its own parent")
        if len(set(parent_ids)) != len(parent_ids):
            raise InvalidNetwork(f"Node {self._nodes[node_id].name!r} has duplicate parents")
        if cpt is None:
            raise InvalidNetwork(f"Node {self._nodes[node_id].name!r}: CPT is required")

        table = np.asarray(cpt, dtype=np.float64)
        expected = tuple(self._nodes[p].cardinality for p in parent_ids) + (
            self._nodes[node_id].cardinality,
        )
        if table.shape != expected:
            raise InvalidNetwork(
                f"CPT for {self._nodes[node_id].name!r} has shape {table.shape}, "
                f"expected {expected}"
            )

        old_parents = self._nodes[node_id].parents
        for p in old_parents:
            self._children[p].remove(node_id)
        for p in parent_ids:
            self._children[p].append(node_id)

        self._nodes[node_id].parents = parent_ids
        self._nodes[node_id].cpt = table

    # ── Lookup ─────────────────────────────────────────────────────

    def resolve(self, ref: NodeRef) -> int:
        """Map a node id or name to its id, raising UnknownNode."""
        if isinstance(ref, (int, np.integer)) and not isinstance(ref, bool):
            if 0 <= int(ref) < len(self._nodes):
                return int(ref)
            raise UnknownNode(ref, "id out of range")
        if isinstance(ref, str) and ref in self._index:
            return self._index[ref]
        raise UnknownNode(ref)

    def resolve_state(self, node_id: int, state: Union[int, str, bool]) -> int:
        """Map a state index, name, or bool (binary nodes) to a state index."""
        node = self._nodes[node_id]
        if isinstance(state, bool):
            if node.cardinality != 2:
                raise UnknownNode(node.name, "boolean state on a non-binary node")
            return int(state)
        if isinstance(state, (int, np.integer)):
            if 0 <= int(state) < node.cardinality:
                return int(state)
            raise UnknownNode(node.name, f"state index {state} out of range")
        if isinstance(state, str) and state in node.states:
            return node.states.index(state)
        raise UnknownNode(node.name, f"unknown state {state!r}")

    def node(self, ref: NodeRef) -> Node:
        return self._nodes[self.resolve(ref)]

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes)

    def children(self, ref: NodeRef) -> list[int]:
        return list(self._children[self.resolve(ref)])

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, ref: object) -> bool:
        try:
            self.resolve(ref)  # type: ignore[arg-type]
        except UnknownNode:
            return False
        return True

    # ── Structure ──────────────────────────────────────────────────

    def is_acyclic(self) -> bool:
        """Kahn's algorithm over parent → child edges."""
        indegree = [len(n.parents) for n in self._nodes]
        queue = deque(i for i, d in enumerate(indegree) if d == 0)
        visited = 0
        while queue:
            current = queue.popleft()
            visited += 1
            for child in self._children[current]:
                indegree[child] -= 1
                if indegree[child] == 0:
                    queue.append(child)
        return visited == len(self._nodes)

    def topology_key(self) -> tuple:
        """Hashable description of structure (names, states, parents)."""
        return tuple((n.name, n.states, n.parents) for n in self._nodes)

    def validate(self) -> None:
        """
        Check every CPT is present, non-negative, and row-normalized.

        Raises:
            InvalidNetwork: On the first malformed CPT.
        """
        if not self._nodes:
            raise InvalidNetwork("Network has no nodes")
        for node in self._nodes:
            if node.cpt is None:
                raise InvalidNetwork(f"Node {node.name!r} has no CPT")
            if not np.all(np.isfinite(node.cpt)):
                raise InvalidNetwork(f"CPT for {node.name!r} contains non-finite values")
            if np.any(node.cpt < 0.0):
                raise InvalidNetwork(f"CPT for {node.name!r} contains negative probabilities")
            row_sums = node.cpt.sum(axis=-1)
            deviation = np.abs(row_sums - 1.0)
            if np.any(deviation > self.epsilon):
                worst = np.unravel_index(int(np.argmax(deviation)), deviation.shape)
                raise InvalidNetwork(
                    f"CPT row {tuple(int(i) for i in worst)} of {node.name!r} sums to "
                    f"{float(row_sums[worst]):.8f}, expected 1 ± {self.epsilon}"
                )

    # ── Serialization ──────────────────────────────────────────────

    @classmethod
    def from_dict(cls, data: dict[str, Any], epsilon: float = 1e-6) -> "BayesNet":
        """
        Build a network from a plain description.

        Format:
            {"nodes": [
                {"name": "rain", "cpt": [0.8, 0.2]},
                {"name": "wet", "parents": ["rain"],
                 "states": ["dry", "wet"], "cpt": [[0.9, 0.1], [0.2, 0.8]]}
            ]}

        Nodes are created first and CPTs attached afterwards, so parents
        may appear in any order (including cycles).
        """
        specs = data.get("nodes", [])
        net = cls(epsilon=epsilon)
        for spec in specs:
            net.add_node(spec["name"], states=spec.get("states", DEFAULT_STATES))
        for spec in specs:
            net.set_cpt(spec["name"], spec.get("parents", []), spec.get("cpt"))
        logger.debug(f"Loaded network with {len(net)} nodes")
        return net

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [
                {
                    "name": n.name,
                    "states": list(n.states),
                    "parents": [self._nodes[p].name for p in n.parents],
                    "cpt": n.cpt.tolist() if n.cpt is not None else None,
                }
                for n in self._nodes
            ]
        }
