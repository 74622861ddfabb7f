"""Tests for working-table statement composition (no engine)."""

import pytest

from mergeview._exceptions import StatementError, UnificationError
from mergeview.compose import ViewBuilder, compose, unify
from mergeview.compose._unify import Unification
from mergeview.schema import Field, History, JoinDeclaration, ResourceSchema, ResourceStats, SortConfig
from mergeview.sql import render


def resource(uuid, *names):
    fields = tuple(Field(name=n) for n in names)
    return ResourceStats(uuid=uuid, resource_schema=ResourceSchema(fields=fields))


@pytest.fixture
def people_with_visits():
    visits = JoinDeclaration(
        source_key="id",
        target_key="person_id",
        target_resource_stats=resource("visits", "person_id", "city"),
        columns=("city",),
    )
    return History(
        resource_stats=resource("people", "id", "name"),
        joined_tables={"visits": visits},
    )


@pytest.fixture
def two_histories(people_with_visits):
    return unify([people_with_visits, History(resource_stats=resource("staff", "id", "city"))])


class TestViewBuilder:

    def test_requires_histories(self):
        with pytest.raises(UnificationError):
            ViewBuilder(Unification(columns=(), histories=()))

    def test_plain_build_creates_working_table_only(self, two_histories):
        (view,) = compose(two_histories)
        assert view.name == "__work"

    @pytest.mark.parametrize(
        "keywords,sort",
        [(["lima"], None), (None, SortConfig(key="column_1")), (["lima"], SortConfig(key="column_1"))],
    )
    def test_keywords_or_sort_add_derived_view(self, two_histories, keywords, sort):
        work, derived = compose(two_histories, keywords=keywords, sort=sort)
        assert work.name == "__work"
        assert derived.name == "__work_filtered_sorted"
        assert 'FROM "__work"' in render(derived)

    def test_unknown_sort_column(self, two_histories):
        with pytest.raises(StatementError, match="unknown column 'column_9'"):
            compose(two_histories, sort=SortConfig(key="column_9"))


class TestSubRelations:

    def test_primary_projection_null_fills(self, two_histories):
        builder = ViewBuilder(two_histories)
        staff = two_histories.histories[1].primary
        sql = render(builder.sub_relation(staff))

        assert sql.startswith('"alias_2" AS (SELECT')
        assert '"0" AS "column_0"' in sql
        assert 'NULL AS "column_1"' in sql
        assert 'NULL AS "column_2"' in sql
        assert '"1" AS "column_3"' in sql
        assert sql.endswith('"__row_id" FROM "staff")')

    def test_join_target_is_grouped_by_key(self, two_histories):
        builder = ViewBuilder(two_histories, delimiter=" | ")
        target = two_histories.histories[0].joins[0].target
        sql = render(builder.sub_relation(target))

        assert '"0" AS "column_2"' in sql
        assert (
            'STRING_AGG(CAST("1" AS VARCHAR), \' | \' ORDER BY "__row_id" ASC NULLS LAST) '
            'AS "column_3"'
        ) in sql
        assert sql.endswith('FROM "visits" GROUP BY "0")')

    def test_history_query_left_joins_on_keys(self, two_histories):
        builder = ViewBuilder(two_histories)
        sql = render(builder.history_query(two_histories.histories[0]))

        assert 'LEFT OUTER JOIN "alias_1" ON ("alias_0"."column_0" = "alias_1"."column_2")' in sql
        assert '"alias_1"."column_3"' in sql
        assert '0 AS "__history"' in sql


class TestOrdering:

    def test_unsorted_keeps_load_order(self, two_histories):
        (work,) = compose(two_histories)
        sql = render(work)
        assert "UNION ALL" in sql
        assert sql.endswith('ORDER BY "__history" ASC NULLS LAST, "__row_id" ASC NULLS LAST')

    def test_sort_without_keywords_skips_load_order(self, two_histories):
        work, derived = compose(two_histories, sort=SortConfig(key="column_1", order="desc"))
        assert '"__history" ASC' not in render(work)
        assert render(derived).endswith('ORDER BY "column_1" DESC NULLS LAST')

    def test_sort_with_keywords_keeps_load_order(self, two_histories):
        work, derived = compose(
            two_histories, keywords=["lima"], sort=SortConfig(key="column_1")
        )
        assert '"__history" ASC' in render(work)
        assert "WHERE" in render(derived)
