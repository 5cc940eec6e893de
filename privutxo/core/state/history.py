"""
UTXO lineage graph and consistency audit.

Every split or transfer output records its parent_utxo. The history keeps
those links in a networkx DiGraph (edges go from parent to child) so the
ancestry of any UTXO can be walked back to its deposit, and so a local
record set can be audited after a crash or a partial sync:

- orphans: records whose parent is not known locally (normal for UTXOs
  received from another principal)
- unspent parents: a record has children but is not marked spent
- value mismatches: confirmed children of a parent do not add up to its value
- cycles: a lineage loop, which can only come from corrupted records
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import networkx as nx

from privutxo.core.state.utxo import UTXO
from privutxo.utils.logger import get_logger, short_hex

logger = get_logger("history")


@dataclass
class AuditReport:
    """Result of UTXOHistory.audit()."""
    total: int = 0
    roots: List[str] = field(default_factory=list)
    orphans: List[str] = field(default_factory=list)
    unspent_parents: List[str] = field(default_factory=list)
    value_mismatches: List[str] = field(default_factory=list)
    has_cycle: bool = False

    @property
    def consistent(self) -> bool:
        return not (self.unspent_parents or self.value_mismatches or self.has_cycle)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "roots": list(self.roots),
            "orphans": list(self.orphans),
            "unspent_parents": list(self.unspent_parents),
            "value_mismatches": list(self.value_mismatches),
            "has_cycle": self.has_cycle,
            "consistent": self.consistent,
        }


class UTXOHistory:
    """
    Parent -> child graph over UTXO ids.

    Attributes:
        graph: networkx DiGraph of ids
        records: Mapping of id to UTXO for nodes known locally
    """

    def __init__(self, utxos: Optional[Iterable[UTXO]] = None):
        self.graph = nx.DiGraph()
        self.records: Dict[str, UTXO] = {}
        for utxo in utxos or ():
            self.add(utxo)

    def add(self, utxo: UTXO) -> None:
        self.records[utxo.id] = utxo
        self.graph.add_node(utxo.id)
        if utxo.parent_utxo:
            self.graph.add_edge(utxo.parent_utxo, utxo.id)

    # =========================================================================
    # Queries
    # =========================================================================

    def children(self, utxo_id: str) -> List[str]:
        if utxo_id not in self.graph:
            return []
        return sorted(self.graph.successors(utxo_id))

    def lineage(self, utxo_id: str) -> List[str]:
        """Ids from the oldest known ancestor down to utxo_id."""
        chain: List[str] = []
        seen = set()
        current: Optional[str] = utxo_id
        while current is not None and current not in seen:
            seen.add(current)
            chain.append(current)
            record = self.records.get(current)
            current = record.parent_utxo if record else None
        chain.reverse()
        return chain

    def descendants(self, utxo_id: str) -> List[str]:
        if utxo_id not in self.graph:
            return []
        return sorted(nx.descendants(self.graph, utxo_id))

    def is_ancestor(self, ancestor_id: str, utxo_id: str) -> bool:
        if ancestor_id not in self.graph or utxo_id not in self.graph:
            return False
        return ancestor_id != utxo_id and nx.has_path(self.graph, ancestor_id, utxo_id)

    # =========================================================================
    # Audit
    # =========================================================================

    def audit(self) -> AuditReport:
        """Check the local records for lineage inconsistencies."""
        report = AuditReport(total=len(self.records))
        report.has_cycle = not nx.is_directed_acyclic_graph(self.graph)

        for utxo_id, utxo in sorted(self.records.items()):
            if utxo.parent_utxo is None:
                report.roots.append(utxo_id)
            elif utxo.parent_utxo not in self.records:
                report.orphans.append(utxo_id)

            # Unconfirmed children are leftovers of submissions that never landed
            children = [self.records[c] for c in self.children(utxo_id) if c in self.records]
            confirmed = [c for c in children if c.confirmed]
            if not confirmed:
                continue
            if not utxo.is_spent:
                report.unspent_parents.append(utxo_id)
            if sum(c.value for c in confirmed) != utxo.value:
                report.value_mismatches.append(utxo_id)

        if not report.consistent:
            logger.warning(
                f"Audit found issues: {len(report.unspent_parents)} unspent parents, "
                f"{len(report.value_mismatches)} value mismatches, cycle={report.has_cycle}"
            )
        else:
            logger.debug(f"Audit clean: {report.total} records, {len(report.orphans)} orphans")
        return report

    def __len__(self) -> int:
        return len(self.records)

    def __repr__(self) -> str:
        return f"UTXOHistory(nodes={self.graph.number_of_nodes()}, edges={self.graph.number_of_edges()})"


def describe_lineage(history: UTXOHistory, utxo_id: str) -> str:
    """One-line 'a -> b -> c' rendering for CLI output."""
    return " -> ".join(short_hex(i) for i in history.lineage(utxo_id))
