"""Tests for ${...} placeholder interpolation."""

import pytest

from workflow.interpolation import get_nested_value, interpolate


@pytest.mark.unit
class TestInterpolate:
    def test_resolves_nested_path(self):
        assert interpolate("Hello ${user.name}", {"user": {"name": "Ada"}}) == "Hello Ada"

    def test_missing_placeholder_preserved(self):
        assert interpolate("Hello ${missing.x}", {}) == "Hello ${missing.x}"

    def test_partial_path_preserved(self):
        variables = {"user": {"name": "Ada"}}
        assert interpolate("${user.email}", variables) == "${user.email}"

    def test_multiple_placeholders(self):
        variables = {"order": {"id": 7, "total": 12.5}, "customer": "Bob"}
        result = interpolate("Order ${order.id} for ${customer}: ${order.total}", variables)
        assert result == "Order 7 for Bob: 12.5"

    def test_list_index(self):
        variables = {"items": [{"sku": "A1"}, {"sku": "B2"}]}
        assert interpolate("second=${items.1.sku}", variables) == "second=B2"

    def test_renders_json_types(self):
        variables = {"flag": True, "nothing": None, "obj": {"a": 1}, "arr": [1, 2]}
        assert interpolate("${flag}", variables) == "true"
        assert interpolate("${nothing}", variables) == "null"
        assert interpolate("${obj}", variables) == '{"a": 1}'
        assert interpolate("${arr}", variables) == "[1, 2]"

    def test_whitespace_inside_braces(self):
        assert interpolate("${ user.name }", {"user": {"name": "Ada"}}) == "Ada"

    def test_empty_and_none_pass_through(self):
        assert interpolate("", {"a": 1}) == ""
        assert interpolate(None, {"a": 1}) is None

    def test_no_placeholders(self):
        assert interpolate("plain text", None) == "plain text"


@pytest.mark.unit
class TestGetNestedValue:
    def test_found(self):
        assert get_nested_value({"a": {"b": {"c": 3}}}, "a.b.c") == 3

    def test_default_when_missing(self):
        assert get_nested_value({"a": {}}, "a.b", default="fallback") == "fallback"

    def test_stored_none_is_not_missing(self):
        assert get_nested_value({"a": None}, "a", default="fallback") is None

    def test_traversal_through_scalar(self):
        assert get_nested_value({"a": 5}, "a.b") is None
