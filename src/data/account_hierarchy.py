"""
Account Hierarchy Rollups

Parent/child account relationships for P&L rollup reporting.
Supports:
- Building the account tree from the account configuration document
- Load-time cycle detection on the parent graph
- Rollup aggregation (sum non-excluded children into parents)
- Mapping warehouse account ids to configured labels

Key Concepts:
- Account label: the unique key of an account in reports
- Rollup: an account's own total plus the rollups of its non-excluded children
- Display mode excludes `displayExcluded` children from a parent's sum;
  Operational mode also excludes `operationalExcluded` children
- An excluded child is still computed (its own subtree is rolled up),
  it just does not contribute to its parent
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Dict, Any, Optional, Set, Iterable, Mapping

from src.core.config_schemas import AccountConfigEntry, validate_document
from src.core.error_taxonomy import AccountCycleError

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class RollupMode(Enum):
    """Which exclusion flags apply when rolling children into parents."""
    DISPLAY = "Display"
    OPERATIONAL = "Operational"

    @classmethod
    def from_pl_type(cls, pl_type: Optional[str]) -> "RollupMode":
        """`Operational` P&L type uses Operational mode, anything else Display."""
        if pl_type and pl_type.strip().lower() == "operational":
            return cls.OPERATIONAL
        return cls.DISPLAY


@dataclass
class AccountNode:
    """
    Represents an account in the hierarchy tree.

    Nodes reference their parent by label; the tree itself lives in the
    children map owned by AccountHierarchy.
    """
    label: str
    parent_label: Optional[str] = None
    display_excluded: bool = False
    operational_excluded: bool = False
    double_lines: bool = False  # presentation only
    account_internal_id: Optional[str] = None

    def is_excluded(self, mode: RollupMode) -> bool:
        if mode == RollupMode.OPERATIONAL:
            return self.operational_excluded or self.display_excluded
        return self.display_excluded

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "parent_label": self.parent_label,
            "display_excluded": self.display_excluded,
            "operational_excluded": self.operational_excluded,
            "double_lines": self.double_lines,
            "account_internal_id": self.account_internal_id,
        }


def build_children_map(accounts: Iterable[AccountNode]) -> Dict[str, List[str]]:
    """
    Build parent label -> child labels, in the order accounts are given.

    Nodes without a label are skipped.
    """
    if isinstance(accounts, Mapping):
        accounts = accounts.values()

    children_map: Dict[str, List[str]] = {}
    for node in accounts:
        if node is None or not node.label:
            continue
        if node.parent_label:
            children_map.setdefault(node.parent_label, []).append(node.label)
    return children_map


def compute_rollups(
    raw_totals: Mapping[str, Decimal],
    accounts: Mapping[str, AccountNode],
    children_map: Mapping[str, List[str]],
    mode: RollupMode = RollupMode.DISPLAY,
) -> Dict[str, Decimal]:
    """
    Roll raw per-account totals up the account tree.

    Every label in `accounts` gets a value. A child listed in the children
    map but missing from `accounts` contributes zero to its parent; raw
    totals for such labels (e.g. "Unknown Account 7777") are passed through
    as standalone values so they stay visible. The result does not depend
    on the order labels are visited.

    Args:
        raw_totals: Direct totals per account label (one scenario, one period)
        accounts: Account nodes keyed by label
        children_map: Parent label -> child labels
        mode: Display or Operational exclusion rules

    Returns:
        Dict of account label -> rolled up total
    """
    memo: Dict[str, Decimal] = {}

    for label in accounts:
        _rollup(label, raw_totals, accounts, children_map, mode, memo)

    result = {label: memo[label] for label in accounts}
    for label, value in raw_totals.items():
        if label not in result:
            result[label] = Decimal(value or ZERO)
    return result


def _rollup(
    label: str,
    raw_totals: Mapping[str, Decimal],
    accounts: Mapping[str, AccountNode],
    children_map: Mapping[str, List[str]],
    mode: RollupMode,
    memo: Dict[str, Decimal],
) -> Decimal:
    if label in memo:
        return memo[label]

    total = Decimal(raw_totals.get(label) or ZERO)

    for child_label in children_map.get(label, []):
        child = accounts.get(child_label)
        if child is None:
            continue
        # Computed even when excluded so its own subtree is memoized
        child_total = _rollup(child_label, raw_totals, accounts, children_map, mode, memo)
        if not child.is_excluded(mode):
            total += child_total

    memo[label] = total
    return total


def find_cycle(parent_of: Mapping[str, Optional[str]]) -> Optional[List[str]]:
    """
    Find a cycle in a child -> parent mapping.

    Returns:
        The cycle as a closed path (first label repeated at the end), or None
    """
    done: Set[str] = set()

    for start in parent_of:
        if start in done:
            continue
        path: List[str] = []
        on_path: Dict[str, int] = {}
        current: Optional[str] = start
        while current is not None and current not in done:
            if current in on_path:
                return path[on_path[current]:] + [current]
            on_path[current] = len(path)
            path.append(current)
            current = parent_of.get(current)
        done.update(path)

    return None


@dataclass
class AccountHierarchy:
    """
    Complete account hierarchy structure.

    Immutable for the duration of a report request.
    """
    # All accounts keyed by label, in document order
    accounts: Dict[str, AccountNode] = field(default_factory=dict)
    children_map: Dict[str, List[str]] = field(default_factory=dict)

    # Warehouse account_internal_id -> label
    label_by_account_id: Dict[str, str] = field(default_factory=dict)
    _warned_account_ids: Set[str] = field(default_factory=set, init=False, repr=False, compare=False)

    @property
    def roots(self) -> List[str]:
        return [label for label, node in self.accounts.items() if not node.parent_label]

    @property
    def total_accounts(self) -> int:
        return len(self.accounts)

    def get_account(self, label: str) -> Optional[AccountNode]:
        return self.accounts.get(label)

    def get_children(self, label: str) -> List[str]:
        return self.children_map.get(label, [])

    def label_for_account_id(self, account_id: Any) -> str:
        """
        Label for a warehouse account id.

        Ids with no configured account map to "Unknown Account {id}" so the
        value stays visible instead of failing the aggregation.
        """
        key = str(account_id).strip() if account_id is not None else ""
        label = self.label_by_account_id.get(key)
        if label is None:
            if key not in self._warned_account_ids:
                self._warned_account_ids.add(key)
                logger.warning(f"No configured account for account id {key!r}")
            return f"Unknown Account {key}"
        return label

    def rollup(self, raw_totals: Mapping[str, Decimal], mode: RollupMode) -> Dict[str, Decimal]:
        return compute_rollups(raw_totals, self.accounts, self.children_map, mode)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_accounts": self.total_accounts,
            "roots": self.roots,
            "children_map": self.children_map,
        }


class AccountHierarchyBuilder:
    """
    Builds the account hierarchy from the account configuration document.

    The document is keyed by node id; `parent` holds the parent's node id
    (a parent given by label is accepted too). Parents are translated to
    labels so the rest of the engine works on labels only.
    """

    def __init__(self, document_name: str = "account_config.json"):
        self.document_name = document_name

    def from_document(self, raw: Any) -> AccountHierarchy:
        """
        Validate the raw document and build the hierarchy.

        Raises:
            ConfigurationError: malformed document
            AccountCycleError: the parent graph contains a cycle
        """
        entries = validate_document(raw, AccountConfigEntry, self.document_name)

        label_by_node_id: Dict[str, str] = {}
        for node_id, entry in entries.items():
            if entry.label:
                label_by_node_id[node_id] = entry.label

        nodes: List[AccountNode] = []
        for node_id, entry in entries.items():
            if not entry.label:
                logger.debug(f"{self.document_name}: node {node_id} has no label, skipping")
                continue
            parent_label = None
            if entry.parent:
                parent_label = label_by_node_id.get(entry.parent, entry.parent)
            nodes.append(AccountNode(
                label=entry.label,
                parent_label=parent_label,
                display_excluded=entry.display_excluded,
                operational_excluded=entry.operational_excluded,
                double_lines=entry.double_lines,
                account_internal_id=entry.account_internal_id,
            ))

        return self.from_nodes(nodes)

    def from_nodes(self, nodes: Iterable[AccountNode]) -> AccountHierarchy:
        """Build the hierarchy from already-constructed nodes."""
        accounts: Dict[str, AccountNode] = {}
        for node in nodes:
            if not node.label:
                continue
            if node.label in accounts:
                logger.warning(f"Duplicate account label {node.label!r}, keeping the first")
                continue
            accounts[node.label] = node

        for node in accounts.values():
            if node.parent_label and node.parent_label not in accounts:
                logger.warning(
                    f"Account {node.label!r} has unknown parent {node.parent_label!r}; treating as a root"
                )
                node.parent_label = None

        cycle = find_cycle({label: node.parent_label for label, node in accounts.items()})
        if cycle:
            raise AccountCycleError(cycle, document=self.document_name)

        label_by_account_id = {
            node.account_internal_id: label
            for label, node in accounts.items()
            if node.account_internal_id
        }

        hierarchy = AccountHierarchy(
            accounts=accounts,
            children_map=build_children_map(accounts.values()),
            label_by_account_id=label_by_account_id,
        )

        logger.info(
            f"Built account hierarchy: {hierarchy.total_accounts} accounts, "
            f"{len(hierarchy.roots)} roots, {len(label_by_account_id)} mapped account ids"
        )
        return hierarchy
