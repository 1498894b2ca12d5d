"""first/skip pagination over Morpho list queries."""

from typing import Any, Protocol

from loguru import logger


class GraphQLExecutor(Protocol):
    async def execute(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]: ...


async def paginate(
    client: GraphQLExecutor,
    query: str,
    variables: dict[str, Any],
    root_field: str,
    page_size: int,
) -> list[dict[str, Any]]:
    """
    Collect all items of a paginated list query, deduplicated by id.

    Pages are fetched sequentially. The loop stops on an empty page, a page
    shorter than page_size, or once skip + items reaches pageInfo.countTotal.

    Args:
        client: GraphQL client
        query: Query accepting $first and $skip
        variables: Remaining query variables
        root_field: Top-level field holding `items` and `pageInfo`
        page_size: Items per page ($first)

    Returns:
        Raw items in the order they were returned
    """
    skip = 0
    seen_ids: set[str] = set()
    collected: list[dict[str, Any]] = []

    while True:
        data = await client.execute(query, {**variables, "first": page_size, "skip": skip})
        page = data.get(root_field) or {}
        items = page.get("items") or []

        logger.debug(f"{root_field}: page skip={skip} returned {len(items)} items")

        if not items:
            break

        for item in items:
            item_id = item.get("id")
            if item_id in seen_ids:
                continue
            seen_ids.add(item_id)
            collected.append(item)

        count_total = (page.get("pageInfo") or {}).get("countTotal")
        if len(items) < page_size:
            break
        if count_total is not None and skip + len(items) >= count_total:
            break

        skip += len(items)

    return collected
