import os
import tempfile
import unittest
from datetime import datetime, timedelta, timezone

from shared.database import create_schema, get_engine, get_session
from match_service.errors import StoreError
from match_service.models import DoerProfile, DoerService, Task, User
from match_service.records import GeoPoint
from match_service.stores import SqlDoerStore, SqlTaskHistoryStore

NINE_TO_FIVE = [{"day": "monday", "available": True, "hours": {"from": "09:00", "to": "17:00"}}]


class SqliteTestCase(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        url = "sqlite+aiosqlite:///" + os.path.join(self.tmp.name, "match.db")
        self.engine = get_engine(url)
        self.session_factory = get_session(self.engine)
        await create_schema(self.engine)

    async def asyncTearDown(self):
        await self.engine.dispose()
        self.tmp.cleanup()

    async def add_doer(
        self,
        lat=0.0,
        lon=0.01,
        categories=("cleaning",),
        role="doer",
        status="available",
        active_task_id=None,
        schedule=None,
    ) -> int:
        async with self.session_factory() as db:
            user = User(full_name="Doer", role=role)
            user.doer_profile = DoerProfile(
                latitude=lat,
                longitude=lon,
                availability_status=status,
                schedule=NINE_TO_FIVE if schedule is None else schedule,
                active_task_id=active_task_id,
                rating_average=4.5,
                rating_count=2,
                completed_tasks=10,
            )
            user.doer_profile.services = [
                DoerService(position=i, category=c) for i, c in enumerate(categories)
            ]
            db.add(user)
            await db.commit()
            return user.id

    async def add_task(self, doer_id, category="cleaning", status="completed", completed_at=None) -> int:
        async with self.session_factory() as db:
            task = Task(
                title="job",
                category=category,
                creator_id=doer_id,
                doer_id=doer_id,
                status=status,
                latitude=0.0,
                longitude=0.0,
                scheduled_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
                completed_at=completed_at,
            )
            db.add(task)
            await db.commit()
            return task.id


class TestSqlDoerStore(SqliteTestCase):

    async def near(self, category="cleaning", lat=0.0, lon=0.0, radius=50):
        store = SqlDoerStore(self.session_factory)
        return await store.near_doers(GeoPoint(latitude=lat, longitude=lon), radius, category)

    async def test_returns_validated_records(self):
        doer_id = await self.add_doer()
        [doer] = await self.near()

        self.assertEqual(doer.id, doer_id)
        profile = doer.doer_profile
        self.assertEqual(profile.current_location.longitude, 0.01)
        self.assertEqual(profile.availability.schedule[0].hours.from_, "09:00")
        self.assertEqual(profile.ratings.average, 4.5)
        self.assertEqual(profile.service_radius_km, 20.0)

    async def test_hard_filters(self):
        keep = await self.add_doer()
        await self.add_doer(role="user")
        await self.add_doer(status="busy")
        await self.add_doer(categories=("plumbing",))
        await self.add_doer(lat=2.0)

        busy_id = await self.add_doer()
        task_id = await self.add_task(busy_id, status="assigned")
        async with self.session_factory() as db:
            profile = await db.get(DoerProfile, busy_id)
            profile.active_task_id = task_id
            await db.commit()

        self.assertEqual([d.id for d in await self.near()], [keep])

    async def test_category_match_ignores_case_and_whitespace(self):
        doer_id = await self.add_doer(categories=("plumbing", " Cleaning "))
        self.assertEqual([d.id for d in await self.near(category="CLEANING")], [doer_id])

    async def test_finds_doers_across_antimeridian(self):
        doer_id = await self.add_doer(lat=0.0, lon=-179.95)
        self.assertEqual([d.id for d in await self.near(lat=0.0, lon=179.95)], [doer_id])

    async def test_skips_malformed_rows(self):
        good = await self.add_doer()
        await self.add_doer(schedule=[{"day": "monday", "available": True, "hours": {"from": "9am", "to": "5pm"}}])

        with self.assertLogs("match_service.stores", level="WARNING"):
            found = await self.near()
        self.assertEqual([d.id for d in found], [good])

    async def test_query_failure_is_store_error(self):
        await self.engine.dispose()
        broken = get_engine("sqlite+aiosqlite:///" + os.path.join(self.tmp.name, "missing", "nope.db"))
        try:
            with self.assertRaises(StoreError):
                await SqlDoerStore(get_session(broken)).near_doers(GeoPoint(latitude=0, longitude=0), 50, "cleaning")
        finally:
            await broken.dispose()


class TestSqlTaskHistoryStore(SqliteTestCase):

    async def test_recent_completed_newest_first_and_limited(self):
        doer_id = await self.add_doer()
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        for days in range(5):
            await self.add_task(doer_id, category=f"c{days}", completed_at=base - timedelta(days=days))
        await self.add_task(doer_id, status="in_progress")
        await self.add_task(doer_id, status="cancelled")

        store = SqlTaskHistoryStore(self.session_factory)
        rows = await store.recent_completed(doer_id, 3)

        self.assertEqual([r.category for r in rows], ["c0", "c1", "c2"])
        self.assertEqual(rows[0].completed_at, base)
        self.assertEqual(rows[0].completed_at.tzinfo, timezone.utc)

    async def test_only_the_doers_own_tasks(self):
        doer_id = await self.add_doer()
        other_id = await self.add_doer()
        await self.add_task(other_id, completed_at=datetime(2024, 1, 1, tzinfo=timezone.utc))

        self.assertEqual(await SqlTaskHistoryStore(self.session_factory).recent_completed(doer_id, 50), [])

    async def test_query_failure_is_store_error(self):
        broken = get_engine("sqlite+aiosqlite:///" + os.path.join(self.tmp.name, "missing", "nope.db"))
        try:
            with self.assertRaises(StoreError):
                await SqlTaskHistoryStore(get_session(broken)).recent_completed(1, 50)
        finally:
            await broken.dispose()
