"""Authoritative directory of active stores."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence

import sqlalchemy as sa

from sales_sync.db import session_scope
from sales_sync.models import Store


@dataclass(frozen=True, slots=True)
class StoreInfo:
    store_id: int
    code: str
    name: str


def normalize_store_codes(values: Iterable[str]) -> List[str]:
    """Uppercase and de-duplicate store codes."""

    normalized = {value.strip().upper() for value in values if value and value.strip()}
    return sorted(normalized)


def index_by_code(stores: Sequence[StoreInfo]) -> Dict[str, StoreInfo]:
    return {store.code.upper(): store for store in stores}


class ActiveStoreDirectory:
    """Reads active stores from the ``stores`` table on every call; nothing is cached."""

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url

    async def list_active(self, store_codes: Sequence[str] | None = None) -> List[StoreInfo]:
        normalized_codes = normalize_store_codes(store_codes or [])
        async with session_scope(self.database_url) as session:
            stmt = (
                sa.select(Store.id, Store.store_code, Store.store_name)
                .where(Store.is_active.is_(True))
                .order_by(Store.store_name, Store.store_code)
            )
            if normalized_codes:
                stmt = stmt.where(sa.func.upper(Store.store_code).in_(normalized_codes))
            result = await session.execute(stmt)
            return [
                StoreInfo(store_id=row.id, code=row.store_code.strip().upper(), name=row.store_name)
                for row in result
            ]
