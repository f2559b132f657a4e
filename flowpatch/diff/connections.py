"""
Connection Table Algebra
In-place edits of a name-keyed connection table, including rename propagation

The table shape is source name -> kind -> branches -> endpoints. Kinds are
free-form strings; nothing here special-cases "main". Branch slots are never
deleted by endpoint removal, so sibling output ports keep their numbering.
"""
from typing import Iterator, List, Set, Tuple

from flowpatch.schemas.workflow import Branch, ConnectionTable, Endpoint
from flowpatch.core.logging import get_logger

logger = get_logger(__name__)

# (source name, kind, branch index, position in branch, endpoint)
EndpointLocation = Tuple[str, str, int, int, Endpoint]


def iter_endpoints(table: ConnectionTable) -> Iterator[EndpointLocation]:
    """Yield every endpoint with its full address, in table order"""
    for source, kinds in table.items():
        for kind, branches in kinds.items():
            for branch_index, branch in enumerate(branches):
                for position, endpoint in enumerate(branch):
                    yield source, kind, branch_index, position, endpoint


def get_branch(table: ConnectionTable, source: str, kind: str, index: int) -> Branch:
    """Return an existing branch or an empty list (never creates structure)"""
    branches = table.get(source, {}).get(kind, [])
    if index < len(branches):
        return branches[index]
    return []


def ensure_branch(table: ConnectionTable, source: str, kind: str, index: int) -> Branch:
    """
    Return the branch at (source, kind, index), creating it if needed

    Missing kind and source maps are created; skipped branch slots are
    padded with empty lists so the branch list never has gaps.
    """
    branches = table.setdefault(source, {}).setdefault(kind, [])
    while len(branches) <= index:
        branches.append([])
    return branches[index]


def contains_endpoint(branch: Branch, endpoint: Endpoint) -> bool:
    return any(
        existing.node == endpoint.node
        and existing.kind == endpoint.kind
        and existing.index == endpoint.index
        for existing in branch
    )


def append_endpoint(
    table: ConnectionTable,
    source: str,
    kind: str,
    index: int,
    endpoint: Endpoint
) -> None:
    ensure_branch(table, source, kind, index).append(endpoint)


def remove_endpoints(
    table: ConnectionTable,
    source: str,
    kind: str,
    index: int,
    target: str
) -> int:
    """
    Remove endpoints pointing at `target` from one exact branch

    The branch is left in place (possibly empty).

    Returns:
        Number of endpoints removed
    """
    branches = table.get(source, {}).get(kind)
    if not branches or index >= len(branches):
        return 0

    kept = [endpoint for endpoint in branches[index] if endpoint.node != target]
    removed = len(branches[index]) - len(kept)
    branches[index] = kept
    return removed


def rewire_endpoint(
    table: ConnectionTable,
    source: str,
    kind: str,
    index: int,
    position: int,
    new_target: str
) -> str:
    """
    Point the endpoint at (source, kind, index, position) at `new_target`

    Only that endpoint is replaced; its input kind and index are kept.

    Returns:
        The previous target name
    """
    branch = table[source][kind][index]
    previous = branch[position]
    branch[position] = previous.model_copy(update={"node": new_target})
    return previous.node


def replace_branches(
    table: ConnectionTable,
    source: str,
    kind: str,
    branches: List[Branch]
) -> None:
    """Replace every branch of one (source, kind); an empty list drops the kind"""
    if branches:
        table.setdefault(source, {})[kind] = [list(branch) for branch in branches]
        return

    kinds = table.get(source)
    if kinds is None:
        return
    kinds.pop(kind, None)
    if not kinds:
        del table[source]


def rename_node_references(table: ConnectionTable, old_name: str, new_name: str) -> int:
    """
    Migrate every reference to `old_name` over to `new_name`

    1. The source entry keyed by the old name moves to the new name, keeping
       its position in the table.
    2. Every endpoint under every source, kind and branch that targets the
       old name is retargeted.

    Returns:
        Number of endpoints retargeted

    Raises:
        ValueError: The table already has an entry keyed by `new_name`
    """
    if old_name == new_name:
        return 0

    if new_name in table:
        raise ValueError(f"Connection table already has an entry for \"{new_name}\"")

    if old_name in table:
        migrated = {}
        for source, kinds in table.items():
            migrated[new_name if source == old_name else source] = kinds
        table.clear()
        table.update(migrated)

    retargeted = 0
    for source, kind, branch_index, position, endpoint in iter_endpoints(table):
        if endpoint.node == old_name:
            endpoint.node = new_name
            retargeted += 1
            logger.debug(
                f"Updated connection {source}[{kind}][{branch_index}][{position}]: "
                f"\"{old_name}\" -> \"{new_name}\""
            )

    return retargeted


def remove_node_references(table: ConnectionTable, name: str) -> int:
    """
    Drop a node from the table entirely

    Its source entry is deleted and every endpoint targeting it is removed
    from every kind and branch. Branch slots of other sources are kept.

    Returns:
        Number of endpoints removed (including those under the node's own entry)
    """
    removed = 0
    own = table.pop(name, None)
    if own:
        removed += sum(len(branch) for branches in own.values() for branch in branches)

    for kinds in table.values():
        for kind, branches in kinds.items():
            for branch_index, branch in enumerate(branches):
                kept = [endpoint for endpoint in branch if endpoint.node != name]
                removed += len(branch) - len(kept)
                branches[branch_index] = kept

    return removed


def find_stale_endpoints(table: ConnectionTable, existing: Set[str]) -> List[Tuple[str, str]]:
    """List (source, target) pairs where either side no longer names a node"""
    return [
        (source, endpoint.node)
        for source, _kind, _branch, _position, endpoint in iter_endpoints(table)
        if source not in existing or endpoint.node not in existing
    ]


def remove_stale_endpoints(table: ConnectionTable, existing: Set[str]) -> List[Tuple[str, str]]:
    """
    Remove stale source entries and stale endpoints

    Returns:
        The (source, target) pairs that were removed
    """
    stale = find_stale_endpoints(table, existing)

    for source in [source for source in table if source not in existing]:
        del table[source]

    for kinds in table.values():
        for branches in kinds.values():
            for branch_index, branch in enumerate(branches):
                branches[branch_index] = [
                    endpoint for endpoint in branch if endpoint.node in existing
                ]

    return stale
