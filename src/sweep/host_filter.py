"""Host selection for sweep.

Narrows an inventory down to the hosts a run should target, either by host
id or by tag query:

- Host id: web01 (first host with that id, if any)
- Tag query: web & !(staging | canary)
"""

import logging

from .inventory import Inventory
from .types import Host

logger = logging.getLogger(__name__)


def select_hosts(
    inventory: Inventory,
    host_id: str | None = None,
    tag_query: str | None = None,
) -> list[Host]:
    """Select the hosts to run against.

    A host id takes precedence over a tag query. With neither, every host
    of the inventory is selected.

    Args:
        inventory: Inventory to select from
        host_id: Identifier of a single host
        tag_query: Boolean tag expression

    Returns:
        Selected hosts, in inventory order

    Raises:
        InvalidHostId: If host_id is not a valid identifier
        InvalidToken: If tag_query is malformed

    Examples:
        # One host
        select_hosts(inventory, host_id="web01")

        # Production web servers
        select_hosts(inventory, tag_query="web & prod")
    """
    if host_id:
        if tag_query:
            logger.warning(f"Host id '{host_id}' given, ignoring tag query '{tag_query}'")
        host = inventory.get_host_by_id(host_id)
        if host is None:
            logger.warning(f"Host '{host_id}' not found in inventory, ignoring...")
            return []
        return [host]

    if tag_query:
        return inventory.get_hosts_by_tag_query(tag_query)

    return list(inventory.hosts)


def format_filter_summary(
    original_count: int,
    filtered_count: int,
    selector: str,
) -> str:
    """Format a summary of host selection.

    Args:
        original_count: Number of hosts in the inventory
        filtered_count: Number of hosts selected
        selector: The host id or tag query that was applied

    Returns:
        Human-readable summary string
    """
    if filtered_count == original_count:
        return f"All {original_count} host(s) matched selector: {selector}"

    excluded = original_count - filtered_count
    return (
        f"Selector '{selector}': {filtered_count}/{original_count} hosts "
        f"({excluded} excluded)"
    )
