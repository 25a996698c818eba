"""Tests for the API version catalog and version ordering."""

from datetime import date

import pytest

from model_migrator.core.api_versions import (
    API_VERSION_CATALOG,
    get_capability,
    is_newer,
    parse_version,
)
from model_migrator.models.enums import ApiOperation


class TestParseVersion:
    """Test date-coded version parsing."""

    def test_ga_version(self):
        assert parse_version("2023-07-31") == (date(2023, 7, 31), 1)

    def test_preview_version(self):
        assert parse_version("2024-02-29-preview") == (date(2024, 2, 29), 0)

    def test_surrounding_whitespace_ignored(self):
        assert parse_version(" 2022-08-31 ") == (date(2022, 8, 31), 1)

    @pytest.mark.parametrize("version", ["", "v3.1", "2023-07", "latest", "2023/07/31"])
    def test_unrecognized_format(self, version):
        with pytest.raises(ValueError, match="Unrecognized API version"):
            parse_version(version)

    def test_invalid_date(self):
        with pytest.raises(ValueError, match="Invalid date"):
            parse_version("2023-02-30")


class TestIsNewer:
    """Test chronological comparison."""

    def test_later_date_is_newer(self):
        assert is_newer("2024-11-30", "2023-07-31")
        assert not is_newer("2023-07-31", "2024-11-30")

    def test_same_version_is_not_newer(self):
        assert not is_newer("2023-07-31", "2023-07-31")

    def test_preview_sorts_before_ga_of_same_date(self):
        assert is_newer("2024-11-30", "2024-11-30-preview")
        assert not is_newer("2024-11-30-preview", "2024-11-30")

    def test_preview_newer_than_older_ga(self):
        assert is_newer("2024-02-29-preview", "2023-07-31")

    def test_comparison_is_not_lexicographic(self):
        # "2023-7-31" sorts after "2023-10-01" as text
        assert is_newer("2023-10-01", "2023-7-31")


class TestCatalog:
    """Test catalog ordering and URL construction."""

    def test_catalog_is_chronological(self):
        keys = [parse_version(capability.version) for capability in API_VERSION_CATALOG]
        assert keys == sorted(keys)

    def test_base_path_changes_with_version(self):
        assert get_capability("2023-07-31").base_path == "formrecognizer"
        assert get_capability("2024-11-30").base_path == "documentintelligence"

    def test_list_url(self):
        capability = get_capability("2023-07-31")
        url = capability.url("https://example.com/", ApiOperation.LIST)
        assert url == "https://example.com/formrecognizer/documentModels?api-version=2023-07-31"

    def test_authorize_url(self):
        capability = get_capability("2024-11-30")
        url = capability.url("https://example.com", ApiOperation.AUTHORIZE)
        assert url == (
            "https://example.com/documentintelligence/documentModels:authorizeCopy"
            "?api-version=2024-11-30"
        )

    def test_copy_url_quotes_model_id(self):
        capability = get_capability("2024-11-30")
        url = capability.url("https://example.com", ApiOperation.COPY, "my model/1")
        assert "/documentModels/my%20model%2F1:copyTo?" in url

    def test_model_id_required(self):
        capability = get_capability("2024-11-30")
        with pytest.raises(ValueError, match="requires a model id"):
            capability.path(ApiOperation.DELETE)

    def test_unknown_version(self):
        with pytest.raises(ValueError, match="not in the catalog"):
            get_capability("2099-01-01")

    def test_every_operation_has_a_template(self):
        for capability in API_VERSION_CATALOG:
            assert set(capability.templates) == set(ApiOperation), capability.version
