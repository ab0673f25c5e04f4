"""
Read-through cache behavior of the course service: reads populate the cache,
writes invalidate every view they can affect.
"""
import pytest

from app.core.cache import CacheManager
from app.core.cache_config import course_detail_key, course_list_key, search_results_key
from app.schemas.course import CourseSearchQuery
from app.services.course import CourseService
from tests.helpers.cache import RecordingCacheBackend


@pytest.fixture
def course_service(cache):
    return CourseService(cache)


@pytest.mark.asyncio
async def test_update_is_visible_through_every_cached_view(db_session, cache, course_service, course_factory):
    course_factory("CS101", rating=4.2)

    detail = await course_service.get_course_by_id(db_session, "CS101")
    search = await course_service.search_courses(db_session, {"query": "computer"})
    listing = await course_service.list_courses(db_session)
    stats = await course_service.get_course_stats(db_session)
    assert detail.rating == 4.2
    assert search.courses[0].rating == 4.2
    assert listing.courses[0].rating == 4.2
    assert stats.average_rating == 4.2

    # Second reads are served from the cache
    assert (await course_service.get_course_by_id(db_session, "CS101")).cached
    assert (await course_service.search_courses(db_session, {"query": "computer"})).cached

    updated = await course_service.update_course(db_session, "CS101", {"rating": 3.0})
    assert updated.rating == 3.0

    detail = await course_service.get_course_by_id(db_session, "CS101")
    search = await course_service.search_courses(db_session, {"query": "computer"})
    listing = await course_service.list_courses(db_session)
    stats = await course_service.get_course_stats(db_session)
    assert not detail.cached and detail.rating == 3.0
    assert not search.cached and search.courses[0].rating == 3.0
    assert not listing.cached and listing.courses[0].rating == 3.0
    assert not stats.cached and stats.average_rating == 3.0


@pytest.mark.asyncio
async def test_search_cache_key_ignores_parameter_order(db_session, cache, course_service, course_factory):
    course_factory("CS101")

    first = await course_service.search_courses(db_session, {"query": "Computer", "category": "Computer", "page": 1})
    second = await course_service.search_courses(db_session, {"page": 1, "category": "Computer", "query": "computer "})
    assert not first.cached
    assert second.cached

    key_a = search_results_key(CourseSearchQuery(query="x", category="y").cache_descriptor())
    key_b = search_results_key(CourseSearchQuery(category="y", query="x").cache_descriptor())
    assert key_a == key_b


@pytest.mark.asyncio
async def test_all_filter_shares_cache_entry_with_no_filter(db_session, course_service, course_factory):
    course_factory("CS101")

    await course_service.search_courses(db_session, {"query": "computer"})
    result = await course_service.search_courses(db_session, {"query": "computer", "category": "all", "skill_level": "all"})
    assert result.cached


@pytest.mark.asyncio
async def test_delete_drops_cached_detail(db_session, cache, course_service, course_factory):
    course_factory("CS101")
    await course_service.get_course_by_id(db_session, "CS101")
    assert course_detail_key("CS101") in cache.backend.keys()

    assert await course_service.delete_course(db_session, "CS101")

    assert course_detail_key("CS101") not in cache.backend.keys()
    assert await course_service.get_course_by_id(db_session, "CS101") is None


@pytest.mark.asyncio
async def test_create_invalidates_stats_and_listings(db_session, course_service, course_data, course_factory):
    course_factory("CS101")
    await course_service.get_course_stats(db_session)
    await course_service.list_courses(db_session)

    await course_service.create_course(db_session, course_data("CS102", rating=5.0))

    stats = await course_service.get_course_stats(db_session)
    listing = await course_service.list_courses(db_session)
    assert not stats.cached
    assert stats.total_courses == 2
    assert not listing.cached
    assert listing.pagination.total_courses == 2


@pytest.mark.asyncio
async def test_failed_update_leaves_cache_intact(db_session, cache, course_service, course_factory):
    course_factory("CS101")
    await course_service.get_course_by_id(db_session, "CS101")
    await course_service.get_course_stats(db_session)
    keys_before = sorted(cache.backend.keys())

    assert await course_service.update_course(db_session, "MISSING", {"rating": 1.0}) is None
    assert not await course_service.delete_course(db_session, "MISSING")

    assert sorted(cache.backend.keys()) == keys_before


@pytest.mark.asyncio
async def test_not_found_is_not_cached(db_session, cache, course_service):
    assert await course_service.get_course_by_id(db_session, "NOPE") is None
    assert course_detail_key("NOPE") not in cache.backend.keys()


@pytest.mark.asyncio
async def test_repeated_search_after_update_shows_new_rating(db_session, course_service, course_data):
    await course_service.create_course(db_session, course_data("cs101", rating=4.2, skill_level="beginner"))
    descriptor = {"query": "", "skill_level": "beginner", "page": 1, "limit": 20}

    before = await course_service.search_courses(db_session, descriptor)
    assert [(c.course_id, c.rating) for c in before.courses] == [("cs101", 4.2)]
    assert (await course_service.search_courses(db_session, dict(reversed(list(descriptor.items()))))).cached

    await course_service.update_course(db_session, "cs101", {"rating": 3.0})

    after = await course_service.search_courses(db_session, descriptor)
    assert not after.cached
    assert [(c.course_id, c.rating) for c in after.courses] == [("cs101", 3.0)]


@pytest.mark.asyncio
async def test_each_read_path_uses_its_own_ttl(db_session, course_factory):
    backend = RecordingCacheBackend()
    course_service = CourseService(CacheManager(backend))
    course_factory("CS101")

    await course_service.get_course_by_id(db_session, "CS101")
    await course_service.search_courses(db_session, {"query": "computer"})
    await course_service.list_courses(db_session)
    await course_service.get_course_stats(db_session)

    assert backend.ttls == {
        course_detail_key("CS101"): 1800,
        search_results_key(CourseSearchQuery(query="computer").cache_descriptor()): 600,
        course_list_key({}, 1, 20): 300,
        "course:stats": 900,
    }
