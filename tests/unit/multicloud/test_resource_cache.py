from datetime import timedelta

from tests.utils import make_resource
from app.modules.multicloud.domain.cache import ResourceCache
from app.schemas.multi_cloud import utcnow
from app.shared.core.provider import CloudProvider

AWS = CloudProvider.AWS


def test_empty_cache_is_never_fresh():
    cache = ResourceCache(ttl=timedelta(minutes=5))

    assert cache.is_fresh(AWS, utcnow()) is False
    assert cache.last_sync(AWS) is None
    assert cache.resources_for(AWS) == []


def test_freshness_follows_ttl():
    cache = ResourceCache(ttl=timedelta(minutes=5))
    now = utcnow()
    cache.replace(AWS, [make_resource(AWS, "a")], now)

    assert cache.is_fresh(AWS, now + timedelta(minutes=4, seconds=59)) is True
    assert cache.is_fresh(AWS, now + timedelta(minutes=5)) is False
    assert cache.is_fresh(AWS, now + timedelta(minutes=1), ttl=timedelta(seconds=30)) is False


def test_replace_swaps_the_whole_snapshot():
    cache = ResourceCache(ttl=timedelta(minutes=5))
    cache.replace(AWS, [make_resource(AWS, "a"), make_resource(AWS, "b")], utcnow())
    cache.replace(AWS, [make_resource(AWS, "c")], utcnow())

    assert [r.id for r in cache.resources_for(AWS)] == ["c"]


def test_upsert_overwrites_by_id_and_keeps_sync_time():
    cache = ResourceCache(ttl=timedelta(minutes=5))
    synced = utcnow() - timedelta(minutes=1)
    cache.replace(AWS, [make_resource(AWS, "a", status="pending")], synced)

    cache.upsert(AWS, make_resource(AWS, "a", status="active"))
    cache.upsert(AWS, make_resource(AWS, "b"))

    resources = {r.id: r for r in cache.resources_for(AWS)}
    assert resources["a"].status == "active"
    assert set(resources) == {"a", "b"}
    assert cache.last_sync(AWS) == synced


def test_upsert_into_empty_provider_does_not_make_it_fresh():
    cache = ResourceCache(ttl=timedelta(minutes=5))
    cache.upsert(AWS, make_resource(AWS, "a"))

    assert cache.is_fresh(AWS, utcnow()) is False
    assert len(cache.all_resources()) == 1


def test_remove_and_invalidate():
    cache = ResourceCache(ttl=timedelta(minutes=5))
    cache.replace(AWS, [make_resource(AWS, "a")], utcnow())

    assert cache.remove(AWS, "missing") is False
    assert cache.remove(AWS, "a") is True
    assert cache.resources_for(AWS) == []
    assert cache.remove(CloudProvider.GCP, "a") is False

    cache.invalidate(AWS)
    assert cache.last_sync(AWS) is None


def test_lock_is_stable_per_provider():
    cache = ResourceCache(ttl=timedelta(minutes=5))

    assert cache.lock_for(AWS) is cache.lock_for(AWS)
    assert cache.lock_for(AWS) is not cache.lock_for(CloudProvider.AZURE)


def test_invalidate_rejects_snapshot_from_earlier_generation():
    cache = ResourceCache(ttl=timedelta(minutes=5))
    generation = cache.generation(AWS)

    cache.invalidate(AWS)

    assert cache.replace(AWS, [make_resource(AWS, "stale")], utcnow(), generation=generation) is False
    assert cache.last_sync(AWS) is None
    assert cache.replace(AWS, [make_resource(AWS, "a")], utcnow(), generation=cache.generation(AWS)) is True
    assert [r.id for r in cache.resources_for(AWS)] == ["a"]
