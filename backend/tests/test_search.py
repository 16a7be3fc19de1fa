"""Tests for scholarship search: eligibility, filters, pagination and ranking."""

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest

from magpie.db.models import UserScholarship
from magpie.engines.search import (
    CursorCodec,
    RankedScholarship,
    Ranker,
    SearchEngine,
    SearchFilters,
    apply_ranking,
)
from magpie.errors import ScholarshipSearchError

from conftest import TODAY, add_user, make_scholarship


class ReversingRanker(Ranker):
    async def rank(self, caller, scholarships):
        return [
            RankedScholarship(id=str(s.id), reason=f"{s.name} fits {caller.city}")
            for s in reversed(scholarships)
        ]


class FailingRanker(Ranker):
    async def rank(self, caller, scholarships):
        raise RuntimeError("model overloaded")


class SlowRanker(Ranker):
    async def rank(self, caller, scholarships):
        await asyncio.sleep(5)
        return []


class UnavailableRanker(Ranker):
    @property
    def is_available(self):
        return False

    async def rank(self, caller, scholarships):
        raise AssertionError("should not be called")


def make_engine(db, ranker=None, **kwargs):
    return SearchEngine(
        db,
        CursorCodec("search-test-secret"),
        ranker=ranker,
        ranking_timeout_seconds=kwargs.pop("ranking_timeout_seconds", 0.1),
        search_timeout_seconds=kwargs.pop("search_timeout_seconds", 5),
        today=lambda: TODAY,
    )


async def seed(db, *scholarships):
    db.add_all(scholarships)
    await db.commit()
    return scholarships


def names(response):
    return [s.name for s in response.scholarships]


class TestEligibility:
    @pytest.mark.asyncio
    async def test_missing_user_or_profile_returns_empty_state(self, db):
        await add_user(db, "no_profile", with_profile=False)
        await seed(db, make_scholarship("Open"))
        engine = make_engine(db)

        for identity in ["no_profile", "unknown"]:
            response = await engine.search(identity)
            assert response.scholarships == []
            assert response.next_cursor is None
            assert response.total_count == 0
            assert response.ai_ranked is False

    @pytest.mark.asyncio
    async def test_base_eligibility(self, db):
        user = await add_user(db, city="Austin", state="TX", gpa=3.5, graduation_year=2027)
        saved = make_scholarship("Saved")
        await seed(
            db,
            make_scholarship("Open"),
            make_scholarship("Texas Only", states=("TX",)),
            make_scholarship("Austin Only", cities=("austin",)),
            make_scholarship("Ohio Only", states=("OH",)),
            make_scholarship("Dallas Only", cities=("Dallas",)),
            make_scholarship("Expired", deadline_in=-1),
            make_scholarship("Due Today", deadline_in=0),
            make_scholarship("Inactive", is_active=False),
            make_scholarship("GPA Too High", min_gpa=3.8),
            make_scholarship("GPA In Range", min_gpa=3.0, max_gpa=4.0),
            make_scholarship("Class Of 2030", min_graduation_year=2030),
            saved,
        )
        db.add(UserScholarship(user_id=user.id, scholarship_id=saved.id, status="saved"))
        await db.commit()

        response = await make_engine(db).search("user_1")

        assert sorted(names(response)) == sorted(
            ["Open", "Texas Only", "Austin Only", "Due Today", "GPA In Range"]
        )
        assert response.total_count == 5

    @pytest.mark.asyncio
    async def test_caller_without_gpa_only_sees_unbounded_gpa(self, db):
        await add_user(db, gpa=None)
        await seed(db, make_scholarship("Any GPA"), make_scholarship("Min GPA", min_gpa=2.0))

        response = await make_engine(db).search("user_1")

        assert names(response) == ["Any GPA"]

    @pytest.mark.asyncio
    async def test_result_projection(self, db):
        await add_user(db, city="Austin", state="TX")
        await seed(
            db,
            make_scholarship("Austin Award", deadline_in=12, cities=("Austin",), amount=1500, min_gpa=None),
            make_scholarship("National Award", deadline_in=20, is_national=True),
        )

        response = await make_engine(db).search("user_1")

        local, national = response.scholarships
        assert local.is_local is True
        assert local.days_until_deadline == 12
        assert local.deadline == TODAY + timedelta(days=12)
        assert local.match_reason is None
        assert national.is_local is False
        assert national.is_national is True

        body = response.model_dump(by_alias=True)
        assert set(body) == {"scholarships", "nextCursor", "totalCount", "aiRanked"}
        assert "daysUntilDeadline" in body["scholarships"][0]
        assert "applicationUrl" in body["scholarships"][0]

    @pytest.mark.asyncio
    async def test_days_until_deadline_follows_the_clock(self, db):
        await add_user(db)
        await seed(db, make_scholarship("Soon", deadline_in=10))
        codec = CursorCodec("search-test-secret")

        first = await SearchEngine(db, codec, today=lambda: TODAY).search("user_1")
        next_day = await SearchEngine(db, codec, today=lambda: TODAY + timedelta(days=1)).search("user_1")

        assert first.scholarships[0].days_until_deadline == 10
        assert next_day.scholarships[0].days_until_deadline == 9


class TestFilters:
    @pytest.mark.asyncio
    async def test_location_filters(self, db):
        await add_user(db, city="Austin", state="TX")
        await seed(
            db,
            make_scholarship("Austin Award", cities=("Austin",), states=("TX",)),
            make_scholarship("Texas Award", states=("tx",)),
            make_scholarship("National Award", is_national=True),
            make_scholarship("Unrestricted Award"),
        )
        engine = make_engine(db)

        local = await engine.search("user_1", SearchFilters(location="local"))
        state = await engine.search("user_1", SearchFilters(location="state"))
        national = await engine.search("user_1", SearchFilters(location="national"))
        everything = await engine.search("user_1", SearchFilters(location="all"))

        assert names(local) == ["Austin Award"]
        assert sorted(names(state)) == ["Austin Award", "Texas Award"]
        assert names(national) == ["National Award"]
        assert len(everything.scholarships) == 4

    @pytest.mark.asyncio
    async def test_local_filter_without_city_matches_nothing(self, db):
        await add_user(db, city=None, state="TX")
        await seed(db, make_scholarship("Texas Award", states=("TX",)))

        response = await make_engine(db).search("user_1", SearchFilters(location="local"))

        assert response.scholarships == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount, minimum", [("1k", 1000), ("5k", 5000), ("10k", 10000)])
    async def test_amount_filter(self, db, amount, minimum):
        await add_user(db)
        await seed(
            db,
            *[make_scholarship(f"Award {value}", amount=value) for value in (500, 1000, 4999, 5000, 12000)],
            make_scholarship("Unknown Amount", amount=None),
        )

        response = await make_engine(db).search("user_1", SearchFilters(amount=amount))

        assert response.scholarships
        assert all(s.amount is not None and s.amount >= minimum for s in response.scholarships)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("window, days", [("month", 30), ("quarter", 90)])
    async def test_deadline_filter(self, db, window, days):
        await add_user(db)
        await seed(db, *[make_scholarship(f"Due {d}", deadline_in=d) for d in (0, 30, 31, 90, 91)])

        response = await make_engine(db).search("user_1", SearchFilters(deadline=window))

        assert response.scholarships
        assert all(s.days_until_deadline <= days for s in response.scholarships)
        assert f"Due {days}" in names(response)

    @pytest.mark.asyncio
    async def test_competition_filter(self, db):
        await add_user(db)
        await seed(
            db,
            make_scholarship("Few Applicants", estimated_applicants=50),
            make_scholarship("Local Level", competition_level="local"),
            make_scholarship("Hundred", estimated_applicants=100),
            make_scholarship("Five Hundred", estimated_applicants=500),
            make_scholarship("Crowded", estimated_applicants=501),
            make_scholarship("National Level", competition_level="national"),
            make_scholarship("Unknown"),
        )
        engine = make_engine(db)

        low = await engine.search("user_1", SearchFilters(competition="low"))
        medium = await engine.search("user_1", SearchFilters(competition="medium"))
        high = await engine.search("user_1", SearchFilters(competition="high"))

        assert sorted(names(low)) == ["Few Applicants", "Local Level"]
        assert sorted(names(medium)) == ["Five Hundred", "Hundred"]
        assert sorted(names(high)) == ["Crowded", "National Level"]

    @pytest.mark.asyncio
    async def test_essay_filter(self, db):
        await add_user(db)
        await seed(
            db,
            make_scholarship("Essay", requires_essay=True),
            make_scholarship("No Essay", requires_essay=False),
        )
        engine = make_engine(db)

        assert names(await engine.search("user_1", SearchFilters(requires_essay="yes"))) == ["Essay"]
        assert names(await engine.search("user_1", SearchFilters(requiresEssay="no"))) == ["No Essay"]

    @pytest.mark.asyncio
    async def test_filters_compose(self, db):
        await add_user(db)
        await seed(
            db,
            make_scholarship("Match", amount=6000, deadline_in=20, requires_essay=True),
            make_scholarship("Too Small", amount=1000, deadline_in=20, requires_essay=True),
            make_scholarship("Too Late", amount=6000, deadline_in=60, requires_essay=True),
            make_scholarship("No Essay", amount=6000, deadline_in=20, requires_essay=False),
        )

        response = await make_engine(db).search(
            "user_1", SearchFilters(amount="5k", deadline="month", requires_essay="yes")
        )

        assert names(response) == ["Match"]
        assert response.total_count == 1


class TestPagination:
    @pytest.mark.asyncio
    async def test_pages_do_not_overlap_and_end_with_null_cursor(self, db):
        await add_user(db)
        # Several share a deadline so the id tiebreak is exercised
        await seed(db, *[make_scholarship(f"Award {i}", deadline_in=10 + i // 3) for i in range(7)])
        engine = make_engine(db)

        seen = []
        cursor = None
        pages = 0
        while True:
            response = await engine.search("user_1", cursor=cursor, limit=3)
            pages += 1
            assert response.total_count == 7
            seen.extend(s.id for s in response.scholarships)
            cursor = response.next_cursor
            if cursor is None:
                break

        assert pages == 3
        assert len(seen) == len(set(seen)) == 7

    @pytest.mark.asyncio
    async def test_order_is_deadline_then_id(self, db):
        await add_user(db)
        await seed(db, *[make_scholarship(f"Award {i}", deadline_in=d) for i, d in enumerate([40, 5, 20])])

        response = await make_engine(db).search("user_1")

        assert [s.days_until_deadline for s in response.scholarships] == [5, 20, 40]
        assert response.next_cursor is None

    @pytest.mark.asyncio
    async def test_exact_page_has_no_next_cursor(self, db):
        await add_user(db)
        await seed(db, *[make_scholarship(f"Award {i}") for i in range(3)])

        response = await make_engine(db).search("user_1", limit=3)

        assert len(response.scholarships) == 3
        assert response.next_cursor is None

    @pytest.mark.asyncio
    async def test_invalid_cursor(self, db):
        await add_user(db)

        with pytest.raises(ScholarshipSearchError) as exc_info:
            await make_engine(db).search("user_1", cursor="forged")
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, 21])
    async def test_limit_out_of_range(self, db, limit):
        with pytest.raises(ScholarshipSearchError) as exc_info:
            await make_engine(db).search("user_1", limit=limit)
        assert exc_info.value.status_code == 400


class TestRanking:
    @pytest.mark.asyncio
    async def test_ranker_reorders_page_with_reasons(self, db):
        await add_user(db, city="Austin")
        await seed(db, *[make_scholarship(f"Award {i}", deadline_in=10 + i) for i in range(3)])

        response = await make_engine(db, ranker=ReversingRanker()).search("user_1")

        assert response.ai_ranked is True
        assert names(response) == ["Award 2", "Award 1", "Award 0"]
        assert response.scholarships[0].match_reason == "Award 2 fits Austin"

    @pytest.mark.asyncio
    async def test_ranking_does_not_change_pagination(self, db):
        await add_user(db)
        await seed(db, *[make_scholarship(f"Award {i}", deadline_in=10 + i) for i in range(4)])

        ranked = await make_engine(db, ranker=ReversingRanker()).search("user_1", limit=2)
        plain = await make_engine(db).search("user_1", limit=2)

        assert set(names(ranked)) == set(names(plain)) == {"Award 0", "Award 1"}
        follow = await make_engine(db).search("user_1", cursor=ranked.next_cursor, limit=2)
        assert names(follow) == ["Award 2", "Award 3"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ranker", [FailingRanker(), SlowRanker(), UnavailableRanker(), None])
    async def test_ranker_failure_falls_back_to_deterministic_order(self, db, ranker):
        await add_user(db)
        await seed(
            db,
            make_scholarship("Later", deadline_in=40, amount=2000),
            make_scholarship("Sooner", deadline_in=5, amount=2000),
            make_scholarship("Small", deadline_in=1, amount=100),
        )

        response = await make_engine(db, ranker=ranker).search("user_1", SearchFilters(amount="1k"))

        assert response.ai_ranked is False
        assert names(response) == ["Sooner", "Later"]
        assert all(s.match_reason is None for s in response.scholarships)

    @pytest.mark.asyncio
    async def test_empty_page_is_not_ranked(self, db):
        await add_user(db)

        response = await make_engine(db, ranker=ReversingRanker()).search("user_1")

        assert response.scholarships == []
        assert response.ai_ranked is False


class TestApplyRanking:
    def test_unknown_and_repeated_ids_are_ignored_and_omitted_items_follow(self):
        page = [make_scholarship(f"Award {i}") for i in range(3)]
        for item in page:
            item.id = uuid4()
        a, b, c = page

        ordered = apply_ranking(
            page,
            [
                RankedScholarship(id=str(c.id).upper(), reason="best"),
                RankedScholarship(id="not-a-real-id", reason="??"),
                RankedScholarship(id=str(c.id), reason="again"),
            ],
        )

        assert [s for s, _ in ordered] == [c, a, b]
        assert [reason for _, reason in ordered] == ["best", None, None]
