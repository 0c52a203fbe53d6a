"""
CLI.

Tests `talon inspect` and `talon version` through click's CliRunner.
"""

import json

from click.testing import CliRunner

from talon import GET, POST, __version__, api, timeout


@api("/v1", headers={"Accept": "application/json"})
class Catalog:
    @GET("/products/{sku}")
    def product(self, sku: str) -> dict: ...

    @timeout(3)
    @POST("/products")
    async def add(self, product: dict) -> dict: ...


class Broken:
    @GET("/products/{sku}")
    def product(self) -> dict: ...


def _invoke(*args):
    from talon.cli import cli

    return CliRunner().invoke(cli, list(args), obj={})


class TestInspect:

    def test_text_output(self):
        result = _invoke("inspect", f"{Catalog.__module__}:Catalog")
        assert result.exit_code == 0
        assert "Catalog" in result.output
        assert "/v1/products/{sku}" in result.output
        assert "sku: path 'sku'" in result.output
        assert "[deferred]" in result.output

    def test_verbose_shows_headers_and_timeout(self):
        result = _invoke("--verbose", "inspect", f"{Catalog.__module__}:Catalog")
        assert result.exit_code == 0
        assert "header Accept: application/json" in result.output
        assert "timeout: 3.0s" in result.output

    def test_json_output(self):
        result = _invoke("inspect", f"{Catalog.__module__}:Catalog", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["prefix"] == "/v1"
        assert [m["name"] for m in data["methods"]] == ["product", "add"]
        assert data["methods"][1]["http_method"] == "POST"

    def test_contract_error(self):
        result = _invoke("inspect", f"{Broken.__module__}:Broken")
        assert result.exit_code == 1
        assert "ROUTE_PLACEHOLDER_UNBOUND" in result.output

    def test_unknown_identity(self):
        result = _invoke("inspect", "talon_missing_module:Api")
        assert result.exit_code == 1


class TestVersion:

    def test_version_command(self):
        result = _invoke("version")
        assert result.exit_code == 0
        assert f"talon {__version__}" in result.output

    def test_version_option(self):
        result = _invoke("--version")
        assert result.exit_code == 0
        assert __version__ in result.output
