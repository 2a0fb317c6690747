"""
Schema probe — runtime introspection of which tables/columns exist.

Deployments are migrated incrementally, so the engine must not assume every
optional column declared in models.py is present. Callers treat an absent
table or column as "feature not present" and fall back to the conservative
answer.

Two implementations share one interface (has_table / has_column / table):
- SchemaProbe: live reflection through the session's connection, uncached.
- SchemaSnapshot: capability descriptor captured once (e.g. at startup) and
  injected into components that run on hot paths.
"""
import logging
from dataclasses import dataclass, field

from sqlalchemy import MetaData, Table, inspect
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

# Tables the engine reads through reflection
ENGINE_TABLES = (
    "users",
    "creator_profiles",
    "creator_profile_photos",
    "products",
    "stripe_connect",
    "memberships",
    "notifications",
)


class SchemaProbe:
    def __init__(self, db: Session):
        self.db = db

    def _inspector(self):
        # A fresh Inspector per call: no reflection cache survives between calls
        return inspect(self.db.connection())

    def has_table(self, name: str) -> bool:
        try:
            return self._inspector().has_table(name)
        except Exception:
            logger.warning("Schema probe failed for table %s", name, exc_info=True)
            return False

    def columns(self, table: str) -> set[str]:
        if not self.has_table(table):
            return set()
        try:
            return {c["name"] for c in self._inspector().get_columns(table)}
        except Exception:
            logger.warning("Schema probe failed for columns of %s", table, exc_info=True)
            return set()

    def has_column(self, table: str, column: str) -> bool:
        return column in self.columns(table)

    def table(self, name: str) -> Table | None:
        """Reflect a table as it exists right now, or None if absent."""
        if not self.has_table(name):
            return None
        try:
            return Table(name, MetaData(), autoload_with=self.db.connection())
        except Exception:
            logger.warning("Schema reflection failed for %s", name, exc_info=True)
            return None


@dataclass(frozen=True)
class SchemaSnapshot:
    """Frozen capability descriptor: {table name: reflected Table}."""
    tables: dict[str, Table] = field(default_factory=dict)

    @classmethod
    def capture(cls, probe: SchemaProbe, names: tuple[str, ...] = ENGINE_TABLES) -> "SchemaSnapshot":
        tables = {}
        for name in names:
            t = probe.table(name)
            if t is not None:
                tables[name] = t
        logger.info(
            "Schema snapshot captured: %s",
            {name: sorted(t.c.keys()) for name, t in tables.items()},
        )
        return cls(tables=tables)

    def has_table(self, name: str) -> bool:
        return name in self.tables

    def columns(self, table: str) -> set[str]:
        t = self.tables.get(table)
        return set(t.c.keys()) if t is not None else set()

    def has_column(self, table: str, column: str) -> bool:
        return column in self.columns(table)

    def table(self, name: str) -> Table | None:
        return self.tables.get(name)
