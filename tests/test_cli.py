"""Tests for the command line interface."""

import json
from unittest.mock import Mock, patch

import pytest
from click.testing import CliRunner

from facetsearch import __version__
from facetsearch.cli import cli

CONFIG = """\
settings:
  max_limit: 100
parameters:
  COUNTRY:
    type: enum
    values: [DK, ES, FR]
  YEAR:
    type: integer
  GEOMETRY:
    type: geometry
catalog:
  mappings:
    COUNTRY: {field: country, cardinality: 250}
    YEAR: year
    GEOMETRY: coordinates
  exclude: [internal]
  sort:
    - {field: year, order: desc}
  full_text:
    - {field: title, boost: 2.0, partial: right}
"""


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "facetsearch.yaml"
    path.write_text(CONFIG)
    return str(path)


def invoke(runner, config_file, *args):
    return runner.invoke(cli, ["-q", "--no-color", "--config", config_file, *args])


class TestGroup:
    """Test global options."""

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert f"facetsearch version {__version__}" in result.output

    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "compile" in result.output
        assert "search" in result.output

    def test_missing_config_file(self, runner, tmp_path):
        result = runner.invoke(cli, ["--config", str(tmp_path / "missing.yaml"), "wkt", "POINT (1 1)"])
        assert result.exit_code == 2

    def test_invalid_config_file(self, runner, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("parameters: [unclosed")

        result = runner.invoke(cli, ["--no-color", "--config", str(path), "wkt", "POINT (1 1)"])

        assert result.exit_code == 1
        assert "Error loading config file" in result.output


class TestWkt:
    """Test the wkt command."""

    def test_normalizes_shape(self, runner, config_file):
        result = invoke(
            runner, config_file, "wkt", "POLYGON ((0 0, 10 0, 10 0, 10 10, 0 10, 0 0))"
        )

        assert result.exit_code == 0
        assert result.stdout.strip() == "POLYGON ((0 0, 10 0, 10 10, 0 10, 0 0))"

    def test_unsupported_shape_is_a_client_error(self, runner, config_file):
        result = invoke(runner, config_file, "wkt", "LINESTRING (0 0, 1 1)")

        assert result.exit_code == 2
        assert "not supported" in result.output


class TestCompile:
    """Test the compile command."""

    def test_prints_request_body(self, runner, config_file):
        result = invoke(
            runner,
            config_file,
            "compile",
            "--filter",
            "COUNTRY=DK",
            "--filter",
            "year=2010..2012",
            "--facet",
            "COUNTRY",
            "--limit",
            "5",
        )

        assert result.exit_code == 0, result.output
        body = json.loads(result.stdout)
        assert body["size"] == 5
        assert body["query"] == {
            "bool": {
                "filter": [
                    {"term": {"country": "DK"}},
                    {"range": {"year": {"gte": 2010, "lte": 2012}}},
                ]
            }
        }
        assert body["aggs"] == {"country": {"terms": {"field": "country", "size": 10}}}
        assert body["sort"] == [{"year": {"order": "desc"}}]
        assert body["_source"] == {"excludes": ["internal"]}

    def test_multi_select(self, runner, config_file):
        result = invoke(
            runner,
            config_file,
            "compile",
            "--filter",
            "COUNTRY=ES",
            "--facet",
            "COUNTRY",
            "--facet",
            "YEAR",
            "--multi-select",
        )

        body = json.loads(result.stdout)
        assert body["post_filter"] == {"term": {"country": "ES"}}
        assert set(body["aggs"]["year"]["aggs"]) == {"filtered_year"}

    def test_query_string_mode(self, runner, config_file):
        result = invoke(runner, config_file, "compile", "--q", "fox", "--mode", "query_string")

        body = json.loads(result.stdout)
        assert body["query"] == {
            "bool": {"must": [{"query_string": {"query": "(title:fox^2.0 OR title:fox*^0.5)"}}]}
        }

    def test_limit_is_capped(self, runner, config_file):
        result = invoke(runner, config_file, "compile", "--limit", "5000")
        assert json.loads(result.stdout)["size"] == 100

    def test_invalid_filter_value(self, runner, config_file):
        result = invoke(runner, config_file, "compile", "--filter", "YEAR=soon")

        assert result.exit_code == 2
        assert "Invalid value 'soon' for parameter YEAR" in result.output

    def test_unknown_parameter(self, runner, config_file):
        result = invoke(runner, config_file, "compile", "--filter", "COLOUR=red")

        assert result.exit_code == 2
        assert "unknown parameter" in result.output

    def test_malformed_filter(self, runner, config_file):
        result = invoke(runner, config_file, "compile", "--filter", "COUNTRY")
        assert result.exit_code == 2

    def test_without_parameters(self, runner, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("settings: {max_limit: 10}\n")

        result = runner.invoke(cli, ["--no-color", "--config", str(path), "compile"])

        assert result.exit_code == 2
        assert "No search parameters configured" in result.output


class TestSearch:
    """Test the search command against a mocked client."""

    @pytest.fixture
    def client(self):
        client = Mock()
        client.search.return_value = {
            "hits": {
                "total": {"value": 1},
                "hits": [{"_id": "2", "_source": {"title": "Arctic fox skull", "year": 2011}}],
            },
            "aggregations": {
                "country": {"buckets": [{"key": "DK", "doc_count": 1}]},
            },
        }
        return client

    def test_search(self, runner, config_file, client):
        with patch("facetsearch.backends.opensearch.OpenSearch", return_value=client):
            result = invoke(
                runner,
                config_file,
                "search",
                "--index",
                "occurrences",
                "--facet",
                "COUNTRY",
                "--timeout",
                "3",
            )

        assert result.exit_code == 0, result.output
        assert "1 results" in result.output
        assert "Arctic fox skull" in result.output
        assert "DK: 1" in result.output
        assert client.search.call_args.kwargs["index"] == "occurrences"
        assert client.search.call_args.kwargs["request_timeout"] == 3.0

    def test_index_from_environment(self, runner, config_file, client, monkeypatch):
        monkeypatch.setenv("FACETSEARCH_INDEX", "from-env")

        with patch("facetsearch.backends.opensearch.OpenSearch", return_value=client):
            result = invoke(runner, config_file, "search")

        assert result.exit_code == 0, result.output
        assert client.search.call_args.kwargs["index"] == "from-env"

    def test_index_is_required(self, runner, config_file):
        result = invoke(runner, config_file, "search")
        assert result.exit_code == 2
