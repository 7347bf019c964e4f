"""Resolution of upstream user/item ids against the canonical catalog tables."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from Playlog import models, repos

log = structlog.get_logger()


@dataclass(frozen=True)
class LookupIndex:
    """Read-only snapshot of one server's users and items.

    Built fresh per chunk; never cached across chunks so catalog updates made
    by the library sync during a long import are picked up.
    """

    users: Mapping[str, models.User] = field(default_factory=dict)
    items: Mapping[str, models.Item] = field(default_factory=dict)
    items_folded: Mapping[str, models.Item] = field(default_factory=dict)

    @classmethod
    def from_rows(cls, users: list[models.User], items: list[models.Item]) -> LookupIndex:
        by_id = {i.external_id: i for i in items}
        return cls(
            users={u.external_id: u for u in users},
            items=by_id,
            items_folded={k.lower(): v for k, v in by_id.items()},
        )

    def user_for(self, external_id: str | None) -> models.User | None:
        # Missing or empty ids are anonymous sessions
        if not external_id:
            return None
        return self.users.get(external_id)

    def item_for(self, external_id: str | None) -> models.Item | None:
        if external_id is None:
            return None
        for lookup in ITEM_LOOKUPS:
            item = lookup(self, external_id)
            if item is not None:
                return item
        log.debug("identity.item.missing", item_id=external_id)
        return None


def _exact_item(index: LookupIndex, external_id: str) -> models.Item | None:
    return index.items.get(external_id)


def _casefolded_item(index: LookupIndex, external_id: str) -> models.Item | None:
    return index.items_folded.get(external_id.lower())


ITEM_LOOKUPS: tuple[Callable[[LookupIndex, str], models.Item | None], ...] = (
    _exact_item,
    _casefolded_item,
)


async def build_index(s: AsyncSession, server_id: int) -> LookupIndex:
    users = await repos.list_users(s, server_id)
    items = await repos.list_items(s, server_id)
    log.debug("identity.index.built", users=len(users), items=len(items))
    return LookupIndex.from_rows(users, items)
