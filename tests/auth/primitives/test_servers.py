"""Tests for resolving the base URL of an API description.

Covers both description shapes and the fallbacks for partially specified
or malformed server metadata.
"""

import pytest

from gatehouse.auth.models.description import ApiDescriptionContext
from gatehouse.auth.primitives.servers import (
    effective_server_url,
    resolve_base_url,
    substitute_server_variables,
)


class TestLegacyDescriptions:
    def test_host_and_scheme_form_the_base_url(self):
        # Arrange
        context = ApiDescriptionContext.legacy(
            "http://specs/file", host="host", scheme="https"
        )

        # Act
        base_url = resolve_base_url(context)

        # Assert
        assert base_url == "https://host"

    @pytest.mark.parametrize("scheme", ["http", "https", "ws"])
    def test_missing_host_uses_description_origin_regardless_of_scheme(self, scheme):
        # Arrange
        context = ApiDescriptionContext.legacy(
            "https://specs:8443/docs/swagger.json", host=None, scheme=scheme
        )

        # Act & Assert
        assert resolve_base_url(context) == "https://specs:8443"

    def test_empty_host_is_treated_as_missing(self):
        context = ApiDescriptionContext.legacy("https://specs/file", host="  ")

        assert resolve_base_url(context) == "https://specs"

    def test_host_with_port_is_kept(self):
        context = ApiDescriptionContext.legacy(
            "https://specs/file", host="api.example.com:8080", scheme="http"
        )

        assert resolve_base_url(context) == "http://api.example.com:8080"

    def test_host_carrying_its_own_scheme_keeps_it(self):
        """Malformed hosts with a scheme are reduced to their own origin."""
        context = ApiDescriptionContext.legacy(
            "http://google.com/swagger.json", host="http://google.com", scheme="https"
        )

        assert resolve_base_url(context) == "http://google.com"

    def test_data_uri_description_without_host_has_no_origin(self):
        context = ApiDescriptionContext.legacy("data:application/json;base64,e30=")

        assert resolve_base_url(context) == ""


class TestMultiServerDescriptions:
    def test_selected_server_is_used_as_is(self):
        context = ApiDescriptionContext.multi_server(
            "http://specs/file", selected_server_url="https://host/resource"
        )

        assert resolve_base_url(context) == "https://host/resource"

    def test_server_variables_are_substituted(self):
        # Arrange
        context = ApiDescriptionContext.multi_server(
            "http://specs/file",
            selected_server_url="https://{selected_host}/resource",
            server_variables={"selected_host": "host"},
        )

        # Act & Assert
        assert resolve_base_url(context) == "https://host/resource"

    def test_resolved_server_value_takes_precedence(self):
        context = ApiDescriptionContext.multi_server(
            "http://specs/file",
            selected_server_url="https://{selected_host}/resource",
            resolved_server_url="https://host/resource",
        )

        assert resolve_base_url(context) == "https://host/resource"

    def test_unbound_variable_falls_back_to_description_origin(self):
        context = ApiDescriptionContext.multi_server(
            "http://specs/file",
            selected_server_url="https://{region}.example.com",
            server_variables={"other": "value"},
        )

        assert resolve_base_url(context) == "http://specs"

    def test_no_selected_server_falls_back_to_description_origin(self):
        context = ApiDescriptionContext.multi_server("https://specs/api/openapi.json")

        assert resolve_base_url(context) == "https://specs"

    def test_relative_server_resolves_against_description_url(self):
        context = ApiDescriptionContext.multi_server(
            "https://specs/docs/openapi.json", selected_server_url="/api/v1"
        )

        assert resolve_base_url(context) == "https://specs/api/v1"

    def test_legacy_host_is_ignored_for_multi_server_descriptions(self):
        context = ApiDescriptionContext(
            spec_url="http://specs/file",
            is_multi_server=True,
            host="legacy-host",
            selected_server_url="https://host/resource",
        )

        assert resolve_base_url(context) == "https://host/resource"


class TestServerVariables:
    def test_substitutes_every_placeholder(self):
        value = substitute_server_variables(
            "{scheme}://{host}:{port}/v1",
            {"scheme": "https", "host": "api.example.com", "port": "443"},
        )

        assert value == "https://api.example.com:443/v1"

    def test_unbound_placeholder_returns_none(self):
        assert substitute_server_variables("https://{host}/v1", {}) is None

    def test_effective_server_url_without_selection_is_none(self):
        context = ApiDescriptionContext.multi_server("http://specs/file")

        assert effective_server_url(context) is None
