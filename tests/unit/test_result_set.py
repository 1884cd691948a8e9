import pytest

from enginesql.backend.models import Column
from enginesql.result_set import ResultSet


class TestResultSet:
    @pytest.fixture
    def result_set(self):
        return ResultSet(
            rows=[[1, "a"], [2, "b"], [3, "c"], [4, "d"]],
            columns=[Column("id", "integer"), Column("name", "varchar")],
            query_id="q1",
            arraysize=3,
        )

    def test_fetchone(self, result_set):
        assert result_set.fetchone() == [1, "a"]
        assert result_set.fetchone() == [2, "b"]
        assert result_set.rownumber == 2

    def test_fetchone_exhausted(self):
        result_set = ResultSet(rows=[])
        assert result_set.fetchone() is None

    def test_fetchmany_defaults_to_arraysize(self, result_set):
        assert result_set.fetchmany() == [[1, "a"], [2, "b"], [3, "c"]]
        assert result_set.fetchmany() == [[4, "d"]]
        assert result_set.fetchmany() == []

    def test_fetchmany_size(self, result_set):
        assert result_set.fetchmany(2) == [[1, "a"], [2, "b"]]
        assert result_set.fetchmany(0) == []

    def test_fetchmany_negative_size(self, result_set):
        with pytest.raises(ValueError):
            result_set.fetchmany(-1)

    def test_fetchall_returns_remaining(self, result_set):
        result_set.fetchone()
        assert result_set.fetchall() == [[2, "b"], [3, "c"], [4, "d"]]
        assert result_set.fetchall() == []

    def test_iteration(self, result_set):
        assert list(result_set) == [[1, "a"], [2, "b"], [3, "c"], [4, "d"]]

    def test_iteration_keeps_falsy_rows(self):
        assert list(ResultSet(rows=[[], [0], [None]])) == [[], [0], [None]]

    def test_len_and_rows(self, result_set):
        result_set.fetchall()
        assert len(result_set) == 4
        assert result_set.rows == [[1, "a"], [2, "b"], [3, "c"], [4, "d"]]

    def test_column_metadata(self, result_set):
        assert result_set.column_names == ["id", "name"]
        assert result_set.description == [
            ("id", "integer", None, None, None, None, None),
            ("name", "varchar", None, None, None, None, None),
        ]
        assert result_set.query_id == "q1"

    def test_as_dicts(self, result_set):
        assert result_set.as_dicts()[0] == {"id": 1, "name": "a"}

    def test_as_dicts_without_columns(self):
        with pytest.raises(ValueError):
            ResultSet(rows=[[1]]).as_dicts()

    def test_to_pandas(self, result_set):
        df = result_set.to_pandas()

        assert list(df.columns) == ["id", "name"]
        assert df.shape == (4, 2)
        assert df["name"].tolist() == ["a", "b", "c", "d"]

    def test_to_pandas_without_columns(self):
        df = ResultSet(rows=[[1, 2]]).to_pandas()
        assert df.shape == (1, 2)
