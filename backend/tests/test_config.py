"""Tests for settings validation."""

import pytest
from pydantic import ValidationError

from magpie.config import Settings

DATABASE_URL = "postgresql+asyncpg://db/magpie"


def test_defaults_keep_ranking_inside_search_timeout():
    settings = Settings(database_url=DATABASE_URL)

    assert settings.ranking_timeout_seconds < settings.search_timeout_seconds


@pytest.mark.parametrize("ranking, search", [(20.0, 20.0), (30.0, 20.0)])
def test_ranking_timeout_must_be_below_search_timeout(ranking, search):
    with pytest.raises(ValidationError) as exc_info:
        Settings(
            database_url=DATABASE_URL,
            ranking_timeout_seconds=ranking,
            search_timeout_seconds=search,
        )

    assert "ranking_timeout_seconds" in str(exc_info.value)


def test_admin_ids_are_parsed_from_csv():
    settings = Settings(database_url=DATABASE_URL, admin_user_ids=" admin_1, ,admin_2 ")

    assert settings.admin_ids == frozenset({"admin_1", "admin_2"})
