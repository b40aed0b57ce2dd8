"""Convert raw GitHub issue records into mirror entities."""

import logging
from typing import Any, Optional

from gh_offline.core.entities import (
    Item,
    ItemKind,
    ItemState,
    Label,
    NormalizedItem,
    NormalizedPage,
    Reaction,
    ReactionKind,
    TrackedRepository,
    parse_timestamp,
)
from gh_offline.core.errors import MalformedResponse

logger = logging.getLogger(__name__)


def normalize_page(repository: TrackedRepository, records: list[Any]) -> NormalizedPage:
    """Normalize one page of raw records.

    Records that fail validation are rejected and counted, never dropped
    silently. Labels are shared by name across the page.

    Args:
        repository: Stored repository (must have an id) owning the records
        records: Raw decoded JSON records

    Returns:
        NormalizedPage with the clean items and the number of rejected records
    """
    if repository.id is None:
        raise ValueError("Repository must be stored before normalizing its records")

    page_labels: dict[str, Label] = {}
    items: list[NormalizedItem] = []
    rejected = 0

    for index, record in enumerate(records):
        try:
            items.append(normalize_record(repository, record, page_labels))
        except MalformedResponse as e:
            rejected += 1
            logger.warning("%s: skipping record %d: %s", repository.full_name, index, e)

    return NormalizedPage(items=items, rejected=rejected)


def normalize_record(
    repository: TrackedRepository,
    record: Any,
    page_labels: Optional[dict[str, Label]] = None,
) -> NormalizedItem:
    """Normalize a single raw record, raising MalformedResponse when invalid."""
    if not isinstance(record, dict):
        raise MalformedResponse(f"expected object, got {type(record).__name__}", repository.full_name)

    if page_labels is None:
        page_labels = {}

    number = _require_int(record, "number", repository)
    remote_id = _require_int(record, "id", repository)
    title = _require_str(record, "title", repository)

    body = record.get("body") or ""
    if not isinstance(body, str):
        raise MalformedResponse(f"#{number}: body is not text", repository.full_name)

    try:
        state = ItemState(record.get("state"))
    except ValueError:
        raise MalformedResponse(f"#{number}: unknown state {record.get('state')!r}", repository.full_name)

    try:
        created_at = parse_timestamp(_require_str(record, "created_at", repository))
        updated_at = parse_timestamp(_require_str(record, "updated_at", repository))
    except ValueError as e:
        raise MalformedResponse(f"#{number}: bad timestamp: {e}", repository.full_name)

    user = record.get("user")
    author = user.get("login") if isinstance(user, dict) else None

    item = Item(
        repo_id=repository.id,
        remote_id=remote_id,
        number=number,
        kind=ItemKind.PULL_REQUEST if record.get("pull_request") is not None else ItemKind.ISSUE,
        title=title,
        body=body,
        state=state,
        author=author,
        created_at=created_at,
        updated_at=updated_at,
    )

    return NormalizedItem(
        item=item,
        labels=_normalize_labels(record.get("labels"), page_labels, number, repository),
        reactions=_normalize_reactions(record.get("reactions"), number, repository),
    )


def _normalize_labels(
    raw_labels: Any,
    page_labels: dict[str, Label],
    number: int,
    repository: TrackedRepository,
) -> tuple[Label, ...]:
    if raw_labels is None:
        return ()
    if not isinstance(raw_labels, list):
        raise MalformedResponse(f"#{number}: labels is not a list", repository.full_name)

    labels: dict[str, Label] = {}
    for raw in raw_labels:
        # The REST API returns objects; some payloads use bare names
        if isinstance(raw, str):
            name, color = raw, None
        elif isinstance(raw, dict) and isinstance(raw.get("name"), str):
            name, color = raw["name"], raw.get("color")
        else:
            raise MalformedResponse(f"#{number}: invalid label {raw!r}", repository.full_name)

        if not name or name in labels:
            continue
        label = page_labels.setdefault(name, Label(name=name, color=color))
        labels[name] = label

    return tuple(labels.values())


def _normalize_reactions(raw_reactions: Any, number: int, repository: TrackedRepository) -> tuple[Reaction, ...]:
    if raw_reactions is None:
        return ()
    if not isinstance(raw_reactions, dict):
        raise MalformedResponse(f"#{number}: reactions is not an object", repository.full_name)

    reactions = []
    for kind in ReactionKind:
        count = raw_reactions.get(kind.value)
        if count is None:
            continue
        if not isinstance(count, int) or isinstance(count, bool) or count < 0:
            raise MalformedResponse(f"#{number}: invalid {kind.value} count {count!r}", repository.full_name)
        reactions.append(Reaction(kind=kind, count=count))

    return tuple(reactions)


def _require_int(record: dict, key: str, repository: TrackedRepository) -> int:
    value = record.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        raise MalformedResponse(f"missing or invalid '{key}'", repository.full_name)
    return value


def _require_str(record: dict, key: str, repository: TrackedRepository) -> str:
    value = record.get(key)
    if not isinstance(value, str):
        raise MalformedResponse(f"missing or invalid '{key}'", repository.full_name)
    return value
