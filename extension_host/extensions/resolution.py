"""Panel registration resolution.

Candidates are ranked by (namespace position, extension position,
registration order). The first candidate for a panel name wins; every
later one is reported as a PanelConflictError.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

from extension_host.core.errors import PanelConflictError
from extension_host.models.extension import ExtensionInfo
from extension_host.models.panel import RegisteredPanel


@dataclass(frozen=True)
class PanelCandidate:
    """One register_panel call made during a refresh cycle."""
    panel_name: str
    extension: ExtensionInfo
    namespace_rank: int
    extension_index: int
    sequence: int
    registration: Any = None

    @property
    def sort_key(self) -> tuple[int, int, int]:
        return (self.namespace_rank, self.extension_index, self.sequence)

    def to_registered_panel(self) -> RegisteredPanel:
        return RegisteredPanel(
            extension_name=self.extension.qualified_name,
            extension_id=self.extension.id,
            namespace=self.extension.namespace,
            registration=self.registration,
        )


def resolve_panels(
    candidates: list[PanelCandidate],
) -> tuple[Mapping[str, RegisteredPanel], list[PanelConflictError]]:
    """Build the panel table from candidates in any arrival order.

    Returns:
        Tuple of (read-only panel table, conflicts for every losing candidate)
    """
    table: dict[str, RegisteredPanel] = {}
    winners: dict[str, PanelCandidate] = {}
    conflicts: list[PanelConflictError] = []

    for candidate in sorted(candidates, key=lambda c: c.sort_key):
        winner = winners.get(candidate.panel_name)
        if winner is not None:
            conflicts.append(PanelConflictError(
                candidate.panel_name,
                winner=winner.extension.qualified_name,
                loser=candidate.extension.qualified_name,
                namespace=candidate.extension.namespace.value if candidate.extension.namespace else None,
            ))
            continue

        winners[candidate.panel_name] = candidate
        table[candidate.panel_name] = candidate.to_registered_panel()

    return MappingProxyType(table), conflicts
