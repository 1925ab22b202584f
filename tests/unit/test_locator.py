"""Unit tests for locator resolution."""
from __future__ import annotations

import pytest

from action_schema import ActiveLocator, CssLocator, LabelLocator, RoleLocator, TestIdLocator, TextLocator
from conftest import FakePage
from locator import check_locator, describe_locator, locator_from_spec


class TestLocatorFromSpec:
    def test_each_kind_maps_to_its_find_operation(self, fake_page: FakePage):
        cases = [
            (RoleLocator(kind="role", role="button", name="Save"), ("role", "button", "Save")),
            (LabelLocator(kind="label", text="Email"), ("label", "Email")),
            (TestIdLocator(kind="testid", id="submit"), ("testid", "submit")),
            (TextLocator(kind="text", text="Welcome"), ("text", "Welcome")),
            (CssLocator(kind="css", selector="#main"), ("css", "#main")),
            (ActiveLocator(kind="active"), ("css", ":focus")),
        ]
        for spec, query in cases:
            assert locator_from_spec(fake_page, spec).query == query

    def test_unknown_kind_raises(self, fake_page: FakePage):
        with pytest.raises(ValueError, match="Unknown locator kind"):
            locator_from_spec(fake_page, object())


class TestCheckLocator:
    @pytest.mark.asyncio
    async def test_reports_count(self):
        page = FakePage(counts={("css", ".item"): 3})
        assert await check_locator(page.locator(".item")) == (True, 3)

    @pytest.mark.asyncio
    async def test_missing_element(self):
        page = FakePage(counts={("css", "#gone"): 0})
        assert await check_locator(page.locator("#gone")) == (False, 0)

    @pytest.mark.asyncio
    async def test_errors_are_not_raised(self):
        class Broken:
            async def count(self):
                raise RuntimeError("detached")

        assert await check_locator(Broken()) == (False, 0)


class TestDescribeLocator:
    def test_role_exact(self):
        spec = RoleLocator(kind="role", role="button", name="Save", exact=True)
        assert describe_locator(spec) == 'role=button name="Save" (exact)'

    def test_other_kinds(self):
        assert describe_locator(LabelLocator(kind="label", text="Email")) == 'label="Email"'
        assert describe_locator(TestIdLocator(kind="testid", id="x")) == 'testid="x"'
        assert describe_locator(CssLocator(kind="css", selector="#a")) == 'css="#a"'
        assert describe_locator(ActiveLocator(kind="active")) == "active element"
