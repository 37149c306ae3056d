"""Tests for change_function_name.py and the change-tracking serializer behind it."""

import json
import subprocess
import sys
from pathlib import Path

import pytest

SCRIPT_PATH = Path(__file__).parent.parent / "skills" / "embedded-sql" / "scripts" / "change_function_name.py"
sys.path.insert(0, str(SCRIPT_PATH.parent))

from change_function_name import FunctionRenamer, change_function_name, match_case, rename_function_in_sql
from change_tracking import ChangeTrackingSerializer, Span, apply_change
from data_tables import QueryRow, database_queries
from sql_query import PlainText, Scalar, SqlQuery, StringLiteral, text_block_literal


def rename(sql: str, old: str = "nvl", new: str = "coalesce") -> str:
    return change_function_name(PlainText(sql), old, new).text


def run_rename(*args: str) -> subprocess.CompletedProcess:
    cmd = [sys.executable, str(SCRIPT_PATH), *args]
    return subprocess.run(cmd, capture_output=True, text=True)


class TestRename:
    def test_only_the_name_changes(self):
        assert rename("select nvl(a,b) from t") == "select coalesce(a,b) from t"

    def test_layout_is_kept(self):
        sql = "SELECT\n    nvl( a ,b )   AS x\nFROM t -- trailing comment\n"
        assert rename(sql) == "SELECT\n    coalesce( a ,b )   AS x\nFROM t -- trailing comment\n"

    def test_strings_and_comments_are_left_alone(self):
        sql = "select nvl(a, b) /* nvl(c, d) */ from t where note = 'nvl(x)'"
        assert rename(sql) == "select coalesce(a, b) /* nvl(c, d) */ from t where note = 'nvl(x)'"

    def test_nested_calls(self):
        assert rename("select nvl(nvl(a, b), c) from t") == "select coalesce(coalesce(a, b), c) from t"

    def test_table_named_like_the_function(self):
        sql = "INSERT INTO nvl (a) SELECT nvl(x, y) FROM t"
        assert rename(sql, new="zz") == "INSERT INTO nvl (a) SELECT zz(x, y) FROM t"

    def test_function_parsed_under_another_name(self):
        assert rename("select ltrim(a) from t", old="ltrim", new="my_trim") == "select my_trim(a) from t"

    def test_casing_follows_the_old_name(self):
        assert rename("SELECT NVL(a, b) FROM t") == "SELECT COALESCE(a, b) FROM t"
        assert rename("select Nvl(a, b) from t", new="Coalesce") == "select Coalesce(a, b) from t"

    def test_glob(self):
        assert rename("select nvl(a, b) from t", old="NV?") == "select coalesce(a, b) from t"

    def test_round_trip(self):
        sql = "select nvl(a, b), x from t where nvl(c, 0) > 1"
        there = rename(sql)
        assert there == "select coalesce(a, b), x from t where coalesce(c, 0) > 1"
        assert rename(there, old="coalesce", new="nvl") == sql

    def test_no_match_returns_the_same_node(self):
        node = PlainText("select coalesce(a, b) from t")
        assert change_function_name(node, "nvl", "coalesce") is node

    def test_not_sql_returns_the_same_node(self):
        node = PlainText("This will be SELECTed by the heuristic but not parse as SQL")
        assert change_function_name(node, "nvl", "coalesce") is node

    def test_records_matching_queries(self):
        queries = database_queries()
        change_function_name(PlainText("select nvl(a, nvl(b, c)) from t", "q.sql"), "nvl", "coalesce", queries)
        change_function_name(PlainText("select coalesce(a, b) from t", "r.sql"), "nvl", "coalesce", queries)
        assert queries.rows == [QueryRow("q.sql", "select nvl(a, nvl(b, c)) from t")]


class TestHostNodes:
    def test_scalar(self):
        node = Scalar("select nvl(a, b) from t", "application.yml", 5)
        assert change_function_name(node, "nvl", "coalesce") == Scalar(
            "select coalesce(a, b) from t", "application.yml", 5
        )

    def test_literal(self):
        node = StringLiteral("select nvl(a, 'x') from t", '"select nvl(a, \'x\') from t"')
        renamed = change_function_name(node, "nvl", "coalesce")
        assert renamed.value == "select coalesce(a, 'x') from t"
        assert renamed.value_source == '"select coalesce(a, \'x\') from t"'

    def test_text_block(self):
        source = '"""\n    select nvl(a, b)\n    from t\n    """'
        renamed = change_function_name(text_block_literal(source), "nvl", "coalesce")
        assert renamed.value == "select coalesce(a, b)\nfrom t\n"
        assert renamed.value_source == '"""\n    select coalesce(a, b)\n    from t\n    """'


class TestMatchCase:
    @pytest.mark.parametrize("original,name,expected", [
        ("NVL", "coalesce", "COALESCE"),
        ("nvl", "COALESCE", "coalesce"),
        ("Nvl", "Coalesce", "Coalesce"),
        ("nVl", "coalesce", "coalesce"),
    ])
    def test_match_case(self, original, name, expected):
        assert match_case(original, name) == expected


class TestChangeTracking:
    def test_spans(self):
        sql = "select nvl(a,b) from t"
        query = SqlQuery.view_of(PlainText(sql))
        tracked = FunctionRenamer("nvl", "coalesce").render(query)

        assert tracked.text == "select coalesce(a,b) from t"
        assert tracked.changed
        [change] = tracked.changes
        assert change.original == Span(7, 10)
        assert change.replaced == Span(7, 15)
        assert tracked.spans() == [Span(7, 15)]
        assert tracked.text[change.replaced.start:change.replaced.end] == "coalesce"

    def test_later_spans_are_shifted(self):
        sql = "select nvl(a, b), nvl(c, d) from t"
        query = SqlQuery.view_of(PlainText(sql))
        tracked = FunctionRenamer("nvl", "coalesce").render(query)
        for span in tracked.spans():
            assert tracked.text[span.start:span.end] == "coalesce"

    def test_base_serializer_changes_nothing(self):
        sql = "select nvl(a, b) /* note */ from t"
        query = SqlQuery.view_of(PlainText(sql))
        tracked = ChangeTrackingSerializer().render(query)
        assert tracked.text == sql
        assert not tracked.changed
        assert ChangeTrackingSerializer().serialize(query) == sql

    def test_apply_change(self):
        sql = "select nvl(a, b), nvl(c, d) from t"
        tracked = FunctionRenamer("nvl", "coalesce").render(SqlQuery.view_of(PlainText(sql)))
        assert apply_change(sql, tracked) == tracked.text

    def test_apply_change_to_other_text(self):
        tracked = FunctionRenamer("nvl", "coalesce").render(SqlQuery.view_of(PlainText("select nvl(a,b) from t")))
        with pytest.raises(ValueError):
            apply_change("select xyz(a,b) from t", tracked)


class TestRenameInSql:
    def test_result(self):
        result = rename_function_in_sql("select nvl(a,b) from t", "nvl", "coalesce")
        assert result == {
            "success": True,
            "original": "select nvl(a,b) from t",
            "renamed": "select coalesce(a,b) from t",
            "changes": [{"old": "nvl", "new": "coalesce", "start": 7, "end": 15}],
        }

    def test_not_sql(self):
        result = rename_function_in_sql("just prose", "nvl", "coalesce")
        assert not result["success"]


class TestCli:
    def test_json(self):
        result = run_rename("select nvl(a,b) from t", "--old", "nvl", "--new", "coalesce")
        assert result.returncode == 0
        assert json.loads(result.stdout)["renamed"] == "select coalesce(a,b) from t"

    def test_sql_only(self):
        result = run_rename("select nvl(a,b) from t", "--old", "nvl", "--new", "coalesce", "--sql-only")
        assert result.stdout == "select coalesce(a,b) from t\n"

    def test_in_place(self, tmp_path):
        path = tmp_path / "q.sql"
        path.write_text("SELECT NVL(a, b) FROM t\n")
        result = run_rename(f"@{path}", "--old", "nvl", "--new", "coalesce", "--in-place")
        assert result.returncode == 0
        assert path.read_text() == "SELECT COALESCE(a, b) FROM t\n"

    def test_in_place_needs_a_file(self):
        result = run_rename("select nvl(a,b) from t", "--old", "nvl", "--new", "coalesce", "--in-place")
        assert result.returncode == 1

    def test_not_sql(self):
        result = run_rename("just prose", "--old", "nvl", "--new", "coalesce")
        assert result.returncode == 1
        assert json.loads(result.stdout)["success"] is False
