import importlib.util
import unittest
from pathlib import Path

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

from shared.database import Base
from match_service import models  # noqa: F401  registers tables on Base

REVISION = (
    Path(__file__).resolve().parents[2]
    / "services"
    / "match-service"
    / "alembic"
    / "versions"
    / "0001_create_matching_tables.py"
)


def _load_revision():
    spec = importlib.util.spec_from_file_location("revision_0001", REVISION)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestInitialRevision(unittest.TestCase):

    def setUp(self):
        self.engine = create_engine("sqlite://")
        self.revision = _load_revision()

    def tearDown(self):
        self.engine.dispose()

    def run_step(self, step):
        with self.engine.begin() as conn:
            with Operations.context(MigrationContext.configure(conn)):
                step()

    def test_upgrade_matches_models(self):
        self.run_step(self.revision.upgrade)
        inspector = inspect(self.engine)

        self.assertEqual(set(inspector.get_table_names()), set(Base.metadata.tables))
        for name, table in Base.metadata.tables.items():
            with self.subTest(table=name):
                migrated = {c["name"] for c in inspector.get_columns(name)}
                self.assertEqual(migrated, {c.name for c in table.columns})

    def test_downgrade_drops_everything(self):
        self.run_step(self.revision.upgrade)
        self.run_step(self.revision.downgrade)
        self.assertEqual(inspect(self.engine).get_table_names(), [])

    def test_revision_is_root(self):
        self.assertEqual(self.revision.revision, "0001")
        self.assertIsNone(self.revision.down_revision)
