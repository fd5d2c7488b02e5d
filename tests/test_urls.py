# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for taxonomap.urls: pure URL helpers."""

from __future__ import annotations

import pytest

from taxonomap.urls import (
    canonicalize_url,
    domain_of,
    is_navigable_url,
    is_same_site,
    normalize_product_url,
    resolve_url,
    url_identity_key,
)

BASE = "https://shop.example.com/"


class TestCanonicalizeUrl:
    def test_strips_query_and_fragment(self):
        assert canonicalize_url("https://x.com/p?a=1&b=2#frag") == "https://x.com/p"

    def test_lowercases_scheme_and_host_only(self):
        assert canonicalize_url("HTTPS://Shop.Example.COM/Men?x=1") == "https://shop.example.com/Men"

    def test_relative_path_kept(self):
        assert canonicalize_url("/men?sort=asc") == "/men"

    def test_idempotent(self):
        once = canonicalize_url("HTTPS://A.COM/B?c#d")
        assert canonicalize_url(once) == once


class TestResolveUrl:
    def test_relative_resolved_against_base(self):
        assert resolve_url("/men", "https://shop.example.com/home") == "https://shop.example.com/men"

    def test_result_is_canonical(self):
        assert resolve_url("/men?page=2#top", BASE) == "https://shop.example.com/men"

    @pytest.mark.parametrize("raw", [None, "", "   ", "#", "  #  ", "#section"])
    def test_empty_and_fragment_only(self, raw):
        assert resolve_url(raw, BASE) is None

    @pytest.mark.parametrize("raw", ["javascript:void(0)", "JavaScript:void(0)", "mailto:a@b.c", "tel:123"])
    def test_non_navigable_schemes(self, raw):
        assert resolve_url(raw, BASE) is None

    def test_absolute_url_kept(self):
        assert resolve_url("https://Other.com/x", BASE) == "https://other.com/x"


class TestDomainOf:
    def test_hostname(self):
        assert domain_of("https://Shop.Example.com/men") == "shop.example.com"

    def test_no_host(self):
        assert domain_of("not a url") == "unknown"


class TestIsSameSite:
    def test_www_ignored(self):
        assert is_same_site("https://www.shop.example.com/a", "https://shop.example.com")

    def test_other_host(self):
        assert not is_same_site("https://other.com/a", BASE)

    def test_relative_is_same_site(self):
        assert is_same_site("/men", BASE)


class TestIsNavigableUrl:
    def test_category_path(self):
        assert is_navigable_url("https://shop.example.com/men")

    @pytest.mark.parametrize("url", [None, "", "#", "mailto:a@b.c", "javascript:void(0)"])
    def test_empty_or_non_navigable(self, url):
        assert not is_navigable_url(url)

    @pytest.mark.parametrize(
        "url",
        ["https://facebook.com/shop", "https://m.facebook.com/shop", "https://www.instagram.com/shop"],
    )
    def test_social_hosts(self, url):
        assert not is_navigable_url(url)

    @pytest.mark.parametrize(
        "path",
        ["/account/orders", "/cart", "/checkout", "/help/returns", "/en/login/"],
    )
    def test_utility_paths(self, path):
        assert not is_navigable_url(f"https://shop.example.com{path}")

    def test_external_host_with_base(self):
        assert not is_navigable_url("https://other.com/men", BASE)

    def test_www_variant_with_base(self):
        assert is_navigable_url("https://www.shop.example.com/men", BASE)


class TestNormalizeProductUrl:
    def test_drops_tracking_and_fragment(self):
        url = "https://Shop.com/p/1?utm_source=news&color=red#reviews"
        assert normalize_product_url(url) == "https://shop.com/p/1?color=red"

    def test_only_tracking_params(self):
        assert normalize_product_url("https://shop.com/p/1?utm_source=a&gclid=x") == "https://shop.com/p/1"

    def test_custom_tracking_params(self):
        assert normalize_product_url("https://shop.com/p/1?src=nav", ("src",)) == "https://shop.com/p/1"

    def test_relative_returned_unchanged(self):
        assert normalize_product_url("/p/1?utm_source=x") == "/p/1?utm_source=x"


class TestUrlIdentityKey:
    def test_case_and_trailing_slash(self):
        assert url_identity_key("https://Shop.com/Men/?sort=asc") == "https://shop.com/men"

    def test_same_key_for_variants(self):
        assert url_identity_key("https://shop.com/men") == url_identity_key("https://SHOP.com/MEN/")

    def test_empty(self):
        assert url_identity_key(None) == ""
        assert url_identity_key("") == ""

    def test_relative(self):
        assert url_identity_key("/Men/") == "/men"
