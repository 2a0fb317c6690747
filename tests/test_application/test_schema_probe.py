"""
Tests for SchemaProbe / SchemaSnapshot.
"""
from sqlalchemy import text

from creatorhub.application.schema_probe import SchemaProbe, SchemaSnapshot


def test_probe_sees_tables_and_columns(db_session):
    probe = SchemaProbe(db_session)
    assert probe.has_table("notifications")
    assert probe.has_column("notifications", "dedup_key")
    assert not probe.has_column("notifications", "nope")
    assert not probe.has_table("nope")
    assert probe.table("nope") is None


def test_probe_is_uncached(bare_session):
    probe = SchemaProbe(bare_session)
    assert not probe.has_table("memberships")

    bare_session.execute(text("CREATE TABLE memberships (id INTEGER PRIMARY KEY)"))
    assert probe.has_table("memberships")
    assert not probe.has_column("memberships", "current_period_end")

    bare_session.execute(text("ALTER TABLE memberships ADD COLUMN current_period_end TIMESTAMP"))
    assert probe.has_column("memberships", "current_period_end")


def test_snapshot_is_frozen(bare_session):
    bare_session.execute(text("CREATE TABLE products (id INTEGER PRIMARY KEY, user_id INTEGER)"))
    snap = SchemaSnapshot.capture(SchemaProbe(bare_session), ("products", "memberships"))

    bare_session.execute(text("ALTER TABLE products ADD COLUMN active BOOLEAN"))

    assert snap.has_table("products")
    assert not snap.has_table("memberships")
    assert snap.columns("products") == {"id", "user_id"}
    assert not snap.has_column("products", "active")
