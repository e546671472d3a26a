"""Shared fixtures: a throwaway SQLite history store and an ASGI client."""
import pytest
from httpx import ASGITransport, AsyncClient

import db
import main


@pytest.fixture(autouse=True)
def store(tmp_path):
    db.configure(f"sqlite:///{tmp_path / 'views.db'}")
    db.init_db()
    yield
    db.engine.dispose()


@pytest.fixture
async def client():
    transport = ASGITransport(app=main.app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    main.clients.clear()


def make_snapshot(fetched_at, views, date=None, titles=None):
    """Build a stored snapshot from ``{id: views}``."""
    titles = titles or {}
    sketches = [
        {"id": sketch_id, "title": titles.get(sketch_id, f"Sketch {sketch_id}"), "views": count}
        for sketch_id, count in views.items()
    ]
    snapshot = {"page_url": "https://openprocessing.org/user/1", "sketches": sketches}
    if date is not None:
        snapshot["date"] = date
    if fetched_at is not None:
        snapshot["fetched_at"] = fetched_at
    return snapshot
