"""Exhaustive, size-capped reads of paginated API listings.

A listing is read by repeatedly calling `fetch_page(cursor)` and passing each
response to an extractor that returns a `Page` with the items, whether more
pages exist, and the cursor of the next page. Two extractors are provided:
`graphql_extractor` for cursor based GraphQL connections and
`rest_extractor` for page-number based REST listings.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import logging
from typing import Any, Generic, TypeVar

from chart_release.exceptions import MalformedResponse

__all__ = [
    "Page",
    "paginate",
    "graphql_extractor",
    "rest_extractor",
]

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

DEFAULT_PAGE_SIZE = 100


@dataclass(frozen=True)
class Page(Generic[_T]):
    """One page of a listing."""

    items: list[_T]
    """The items of this page, in source order."""

    has_next: bool
    """Whether another page follows."""

    next_cursor: Any = None
    """The cursor passed to fetch the next page."""


async def paginate(
    fetch_page: Callable[[Any], Awaitable[Any]],
    extract: Callable[[Any], Page[_T]],
    filter_fn: Callable[[_T], bool] | None = None,
    limit: int | None = None,
    start: Any = None,
) -> list[_T]:
    """Read a listing until exhausted or `limit` filtered items are collected.

    The filter is applied to each page before accumulating and the result is
    truncated so it never exceeds `limit`. No further pages are fetched once
    the limit is reached.
    """
    results: list[_T] = []
    cursor = start
    pages = 0
    while True:
        response = await fetch_page(cursor)
        pages += 1
        page = extract(response)
        items = page.items if filter_fn is None else [i for i in page.items if filter_fn(i)]
        results.extend(items)
        if limit is not None and len(results) >= limit:
            _LOGGER.debug("Reached limit of %d items after %d pages", limit, pages)
            return results[:limit]
        if not page.has_next:
            _LOGGER.debug("Read %d items from %d pages", len(results), pages)
            return results
        cursor = page.next_cursor


def graphql_extractor(
    connection: Callable[[dict[str, Any]], Any],
) -> Callable[[Any], Page[dict[str, Any]]]:
    """Return an extractor for a GraphQL connection with `nodes` and `pageInfo`.

    The `connection` function selects the connection object from the response
    data, e.g. `lambda data: data["repository"]["releases"]`.
    """

    def extract(response: Any) -> Page[dict[str, Any]]:
        try:
            data = connection(response)
        except (KeyError, TypeError) as err:
            raise MalformedResponse(f"Invalid GraphQL response structure: {err}") from err
        if (
            not isinstance(data, dict)
            or not isinstance(data.get("nodes"), list)
            or not isinstance(page_info := data.get("pageInfo"), dict)
        ):
            raise MalformedResponse(f"Invalid GraphQL response structure: {data}")
        has_next = bool(page_info.get("hasNextPage"))
        cursor = page_info.get("endCursor")
        if has_next and not cursor:
            raise MalformedResponse("GraphQL response has a next page without a cursor")
        return Page(items=data["nodes"], has_next=has_next, next_cursor=cursor)

    return extract


def rest_extractor(
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Callable[[Any], Page[dict[str, Any]]]:
    """Return an extractor for a page-number REST listing.

    The fetch function must return a `(page_number, response)` tuple whose
    response is the list of items. A full page means another page may follow.
    """

    def extract(response: Any) -> Page[dict[str, Any]]:
        if not isinstance(response, tuple) or len(response) != 2:
            raise MalformedResponse("REST page must be a (page, response) tuple")
        page, items = response
        if not isinstance(items, list):
            raise MalformedResponse(f"Invalid REST response, expected a list: {items}")
        return Page(items=items, has_next=len(items) >= page_size, next_cursor=page + 1)

    return extract
