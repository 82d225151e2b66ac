"""
End-to-end tests for the redirect pipeline.

Each test builds an app with its own settings around a FakeOrigin (see
conftest) and drives it with TestClient. Nothing leaves the process.
"""

import gzip

import pytest


class TestBypasses:
    def test_non_read_methods_are_forwarded_with_body(self, make_client, origin):
        client = make_client()
        response = client.post("/checkout", content=b"order=1", headers={"Accept-Language": "de"})

        assert response.status_code == 200
        assert response.text == "origin:POST:/checkout"
        assert origin.calls[0].content == b"order=1"

    @pytest.mark.parametrize("path", ["/photo.jpg", "/uploads/2024/PIC.PNG", "/clips/intro.mp4"])
    def test_media_paths_always_pass_through(self, make_client, origin, path):
        client = make_client(listen_on_all_paths=True, listen_on_paths=["/**"])
        response = client.get(path, headers={"Accept-Language": "de"})

        assert response.status_code == 200
        assert origin.paths == [path]

    @pytest.mark.parametrize("path", ["/wp-admin/", "/wp-admin/edit.php", "/wp-login.php", "/admin"])
    def test_admin_paths_always_pass_through(self, make_client, origin, path):
        client = make_client(listen_on_all_paths=True)
        response = client.get(path, headers={"Accept-Language": "de"})

        assert response.status_code == 200
        assert "location" not in response.headers

    def test_bypasses_never_get_currency_cookie(self, make_client):
        client = make_client(currency_enabled=True)
        response = client.get("/logo.png", headers={"CF-IPCountry": "US"})
        assert "woocs_curr" not in response.headers.get("set-cookie", "")

    def test_origin_response_is_relayed_untouched(self, make_client):
        client = make_client()
        response = client.get("/a/b/c")

        assert response.status_code == 200
        assert response.headers["x-origin"] == "yes"
        assert response.headers["set-cookie"] == "session=abc; Path=/"
        assert response.text == "origin:GET:/a/b/c"


class TestRedirects:
    def test_redirects_to_negotiated_language(self, make_client, origin):
        client = make_client()
        response = client.get("/foo", headers={"Accept-Language": "de"})

        assert response.status_code == 302
        assert response.headers["location"] == "http://testserver/de/foo"
        assert response.headers["cache-control"] == "public, max-age=3600"
        assert response.content == b""
        assert origin.calls == []

    def test_query_string_is_kept(self, make_client):
        client = make_client()
        response = client.get("/foo?color=red&size=2", headers={"Accept-Language": "fr"})
        assert response.headers["location"] == "http://testserver/fr/foo?color=red&size=2"

    def test_root_path(self, make_client):
        client = make_client()
        response = client.get("/", headers={"Accept-Language": "fr"})
        assert response.headers["location"] == "http://testserver/fr/"

    def test_head_requests_are_redirected(self, make_client):
        client = make_client()
        response = client.head("/foo", headers={"Accept-Language": "de"})
        assert response.status_code == 302

    def test_redirect_is_idempotent(self, make_client):
        client = make_client(cache_enabled=False)
        first = client.get("/foo", headers={"Accept-Language": "de"})
        second = client.get("/foo", headers={"Accept-Language": "de"})
        assert first.headers["location"] == second.headers["location"] == "http://testserver/de/foo"

    def test_region_fallback(self, make_client):
        client = make_client(supported_languages=["de", "en"])
        response = client.get("/foo", headers={"Accept-Language": "en-GB,de;q=0.8"})
        assert response.headers["location"] == "http://testserver/de/foo"

    def test_region_supported_language_becomes_prefix(self, make_client):
        client = make_client()
        response = client.get("/foo", headers={"Accept-Language": "pt-BR"})
        assert response.headers["location"] == "http://testserver/pt-br/foo"

    def test_custom_redirect_max_age(self, make_client):
        client = make_client(redirect_max_age=60)
        response = client.get("/foo", headers={"Accept-Language": "de"})
        assert response.headers["cache-control"] == "public, max-age=60"


class TestPassthrough:
    def test_no_accept_language_passes_through(self, make_client, origin):
        client = make_client()
        response = client.get("/foo")
        assert response.status_code == 200
        assert origin.paths == ["/foo"]

    def test_default_language_passes_through(self, make_client):
        client = make_client()
        response = client.get("/foo", headers={"Accept-Language": "en-US,en;q=0.9"})
        assert response.status_code == 200

    def test_unsupported_language_passes_through(self, make_client):
        client = make_client()
        response = client.get("/foo", headers={"Accept-Language": "ja,zh;q=0.8"})
        assert response.status_code == 200

    @pytest.mark.parametrize("path", ["/de/foo", "/DE/foo", "/fr", "/pt-BR/shop"])
    def test_prefixed_paths_pass_through(self, make_client, origin, path):
        client = make_client(listen_on_all_paths=True)
        response = client.get(path, headers={"Accept-Language": "de"})
        assert response.status_code == 200
        assert origin.paths == [path]

    def test_listen_on_prefixed_paths_redirects_again(self, make_client):
        client = make_client(listen_on_all_paths=True, listen_on_prefixed_paths=True)
        response = client.get("/fr/foo", headers={"Accept-Language": "de"})
        assert response.headers["location"] == "http://testserver/de/fr/foo"

    def test_out_of_scope_path_passes_through(self, make_client, origin):
        client = make_client(listen_on_paths=["/shop/**"])
        response = client.get("/blog/post", headers={"Accept-Language": "de"})
        assert response.status_code == 200
        assert origin.paths == ["/blog/post"]

    def test_in_scope_route(self, make_client):
        client = make_client(listen_on_paths=["/shop/**"])
        response = client.get("/shop/shoes/red", headers={"Accept-Language": "de"})
        assert response.headers["location"] == "http://testserver/de/shop/shoes/red"

    def test_listen_on_all_paths_ignores_routes(self, make_client):
        client = make_client(listen_on_paths=["/shop"], listen_on_all_paths=True)
        response = client.get("/anything/deep/down", headers={"Accept-Language": "de"})
        assert response.status_code == 302

    def test_origin_down_answers_bad_gateway(self, make_client, origin):
        origin.fail_times = 1
        client = make_client()
        response = client.get("/foo")
        assert response.status_code == 502


class TestAlwaysOnNotFound:
    def test_not_found_is_promoted_to_redirect(self, make_client, origin):
        origin.statuses["/missing/page"] = 404
        client = make_client(listen_on_paths=["/shop/**"], always_on_not_found=True)
        response = client.get("/missing/page", headers={"Accept-Language": "de"})

        assert response.status_code == 302
        assert response.headers["location"] == "http://testserver/de/missing/page"
        assert origin.paths == ["/missing/page"]

    @pytest.mark.parametrize("status", [200, 500])
    def test_other_statuses_are_returned_as_is(self, make_client, origin, status):
        origin.default_status = status
        client = make_client(listen_on_paths=["/shop/**"], always_on_not_found=True)
        response = client.get("/blog/post", headers={"Accept-Language": "de"})

        assert response.status_code == status
        assert response.text == "origin:GET:/blog/post"
        assert origin.paths == ["/blog/post"]

    def test_promoted_without_language_header_passes_through(self, make_client, origin):
        origin.statuses["/gone"] = 404
        client = make_client(listen_on_paths=["/shop/**"], always_on_not_found=True)
        response = client.get("/gone")

        assert response.status_code == 404
        assert origin.paths == ["/gone", "/gone"]

    def test_probe_failure_fails_open(self, make_client, origin):
        origin.fail_times = 1
        client = make_client(listen_on_paths=["/shop/**"], always_on_not_found=True)
        response = client.get("/blog/post", headers={"Accept-Language": "de"})

        assert response.status_code == 200
        assert response.text == "origin:GET:/blog/post"
        assert len(origin.calls) == 2

    def test_disabled_means_no_probe(self, make_client, origin):
        origin.default_status = 404
        client = make_client(listen_on_paths=["/shop/**"])
        response = client.get("/blog/post", headers={"Accept-Language": "de"})

        assert response.status_code == 404
        assert len(origin.calls) == 1


class TestRedirectCaching:
    def test_second_request_is_served_from_cache(self, make_client, origin, memory_store):
        origin.default_status = 404
        client = make_client(listen_on_paths=["/shop/**"], always_on_not_found=True)

        headers = {"Accept-Language": "de", "X-Request-ID": "req-1"}
        first = client.get("/lost", headers=headers)
        second = client.get("/lost", headers=headers)

        assert first.status_code == second.status_code == 302
        assert first.headers.raw == second.headers.raw
        assert first.content == second.content
        # The probe ran once; the second answer came from the cache
        assert origin.paths == ["/lost"]
        assert len(memory_store) == 1

    def test_cache_is_namespaced_by_language(self, make_client):
        client = make_client()
        german = client.get("/foo", headers={"Accept-Language": "de"})
        french = client.get("/foo", headers={"Accept-Language": "fr"})
        assert german.headers["location"].endswith("/de/foo")
        assert french.headers["location"].endswith("/fr/foo")

    def test_passthrough_is_not_cached(self, make_client, origin, memory_store):
        client = make_client()
        client.get("/foo", headers={"Accept-Language": "en"})
        client.get("/foo", headers={"Accept-Language": "en"})
        assert origin.paths == ["/foo", "/foo"]
        assert len(memory_store) == 0

    def test_cache_disabled(self, make_client, memory_store):
        client = make_client(cache_enabled=False)
        client.get("/foo", headers={"Accept-Language": "de"})
        assert len(memory_store) == 0


class TestCurrency:
    def test_cookie_added_to_redirect(self, make_client):
        client = make_client(currency_enabled=True)
        response = client.get("/foo", headers={"Accept-Language": "de", "CF-IPCountry": "US"})

        assert response.status_code == 302
        assert response.headers["set-cookie"] == "woocs_curr=USD; Path=/; Max-Age=2592000; Secure; SameSite=Lax"

    def test_cookie_appended_to_passthrough(self, make_client):
        client = make_client(currency_enabled=True, cache_currency_passthrough=False)
        response = client.get("/foo", headers={"CF-IPCountry": "gb"})

        cookies = response.headers.get_list("set-cookie")
        assert "session=abc; Path=/" in cookies
        assert any(cookie.startswith("woocs_curr=GBP;") for cookie in cookies)
        assert response.text == "origin:GET:/foo"

    def test_existing_cookie_is_never_overwritten(self, make_client):
        client = make_client(currency_enabled=True)
        response = client.get(
            "/foo", headers={"Accept-Language": "de", "CF-IPCountry": "US", "Cookie": "woocs_curr=EUR"}
        )
        assert response.status_code == 302
        assert "woocs_curr" not in response.headers.get("set-cookie", "")

    def test_unmapped_country_gets_default_currency(self, make_client):
        client = make_client(currency_enabled=True, default_currency="CHF")
        response = client.get("/foo", headers={"Accept-Language": "de", "CF-IPCountry": "JP"})
        assert response.headers["set-cookie"].startswith("woocs_curr=CHF;")

    def test_cached_redirect_does_not_leak_cookie_across_clients(self, make_client, memory_store):
        client = make_client(currency_enabled=True)
        american = client.get("/foo", headers={"Accept-Language": "de", "CF-IPCountry": "US"})
        british = client.get("/foo", headers={"Accept-Language": "de", "CF-IPCountry": "GB"})
        returning = client.get(
            "/foo", headers={"Accept-Language": "de", "CF-IPCountry": "GB", "Cookie": "woocs_curr=USD"}
        )

        assert american.headers.get_list("set-cookie") == [
            "woocs_curr=USD; Path=/; Max-Age=2592000; Secure; SameSite=Lax"
        ]
        assert british.headers.get_list("set-cookie") == [
            "woocs_curr=GBP; Path=/; Max-Age=2592000; Secure; SameSite=Lax"
        ]
        assert returning.headers.get_list("set-cookie") == []
        assert british.headers["location"] == returning.headers["location"]
        assert len(memory_store) == 1

    def test_currency_passthrough_is_cached(self, make_client, origin, memory_store):
        origin.cookie = None
        client = make_client(currency_enabled=True)
        first = client.get("/foo", headers={"CF-IPCountry": "US"})
        second = client.get("/foo", headers={"CF-IPCountry": "GB"})

        assert origin.paths == ["/foo"]
        assert first.content == second.content == b"origin:GET:/foo"
        assert len(memory_store) == 1
        # The stored page is shared; the currency cookie is per client
        assert second.headers.get_list("set-cookie") == [
            "woocs_curr=GBP; Path=/; Max-Age=2592000; Secure; SameSite=Lax"
        ]

    def test_probe_response_is_not_augmented(self, make_client):
        client = make_client(currency_enabled=True, listen_on_paths=["/shop/**"], always_on_not_found=True)
        response = client.get("/blog", headers={"CF-IPCountry": "US"})
        assert response.headers.get_list("set-cookie") == ["session=abc; Path=/"]

    def test_fail_open_passthrough_gets_cookie(self, make_client, origin):
        origin.fail_times = 1
        client = make_client(currency_enabled=True, listen_on_paths=["/shop/**"], always_on_not_found=True)
        response = client.get("/blog", headers={"CF-IPCountry": "US"})

        assert response.status_code == 200
        assert response.headers.get_list("set-cookie") == [
            "session=abc; Path=/",
            "woocs_curr=USD; Path=/; Max-Age=2592000; Secure; SameSite=Lax",
        ]
        assert len(origin.calls) == 2


class TestSharedPassthroughCache:
    """Stored currency passthroughs must never carry one client's page to another."""

    @pytest.fixture
    def client(self, make_client, origin):
        origin.cookie = None
        return make_client(currency_enabled=True)

    @pytest.mark.parametrize("cache_control", ["private", "no-store", "no-cache", "private, max-age=60"])
    def test_private_cache_control_is_not_stored(self, client, origin, memory_store, cache_control):
        origin.headers["/cart"] = [("cache-control", cache_control)]
        client.get("/cart", headers={"CF-IPCountry": "US"})
        client.get("/cart", headers={"CF-IPCountry": "US"})

        assert origin.paths == ["/cart", "/cart"]
        assert len(memory_store) == 0

    def test_personal_page_is_not_replayed(self, client, origin, memory_store):
        origin.headers["/cart"] = [("cache-control", "private, no-store")]
        alice = client.get("/cart", headers={"CF-IPCountry": "US", "Cookie": "session=alice"})
        bob = client.get("/cart", headers={"CF-IPCountry": "US", "Cookie": "session=bob"})

        assert alice.text == "origin:GET:/cart:session=alice"
        assert bob.text == "origin:GET:/cart:session=bob"
        assert len(memory_store) == 0

    def test_response_from_request_with_cookies_is_not_stored(self, client, origin, memory_store):
        client.get("/cart", headers={"CF-IPCountry": "US", "Cookie": "session=alice"})
        assert len(memory_store) == 0

        anonymous = client.get("/cart", headers={"CF-IPCountry": "US"})
        assert anonymous.text == "origin:GET:/cart"
        assert origin.paths == ["/cart", "/cart"]

    def test_authorization_is_not_stored(self, client, origin, memory_store):
        client.get("/cart", headers={"CF-IPCountry": "US", "Authorization": "Basic YWxpY2U6cHc="})
        assert len(memory_store) == 0

    def test_stored_page_is_not_served_to_request_with_cookies(self, client, origin, memory_store):
        client.get("/foo", headers={"CF-IPCountry": "US"})
        assert len(memory_store) == 1

        response = client.get("/foo", headers={"CF-IPCountry": "US", "Cookie": "session=bob"})
        assert response.text == "origin:GET:/foo:session=bob"
        assert origin.paths == ["/foo", "/foo"]

    def test_response_setting_cookie_is_not_stored(self, client, origin, memory_store):
        origin.headers["/cart"] = [("set-cookie", "cart=1; Path=/")]
        client.get("/cart", headers={"CF-IPCountry": "US"})
        assert len(memory_store) == 0

    def test_encoded_body_is_not_stored(self, client, origin, memory_store):
        origin.bodies["/foo"] = gzip.compress(b"compressed page")
        origin.headers["/foo"] = [("content-encoding", "gzip"), ("vary", "Accept-Encoding")]

        first = client.get("/foo", headers={"CF-IPCountry": "US", "Accept-Encoding": "gzip"})
        second = client.get("/foo", headers={"CF-IPCountry": "US", "Accept-Encoding": "identity"})

        assert first.content == b"compressed page"
        assert origin.paths == ["/foo", "/foo"]
        assert origin.calls[1].headers["accept-encoding"] == "identity"
        assert second.status_code == 200
        assert len(memory_store) == 0

    def test_vary_on_other_headers_is_not_stored(self, client, origin, memory_store):
        origin.headers["/foo"] = [("vary", "Accept-Encoding, Cookie")]
        client.get("/foo", headers={"CF-IPCountry": "US"})
        assert len(memory_store) == 0

    def test_vary_on_keyed_headers_is_stored(self, client, origin, memory_store):
        origin.headers["/foo"] = [("vary", "Accept-Language, Accept-Encoding")]
        client.get("/foo", headers={"CF-IPCountry": "US"})
        assert len(memory_store) == 1


class TestInternalEndpoints:
    def test_health(self, make_client, origin):
        client = make_client()
        response = client.get("/__edge/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["cache"] == {"enabled": True, "backend": "MemoryCacheStore", "connected": True}
        assert origin.calls == []

    def test_metrics(self, make_client):
        client = make_client()
        client.get("/foo", headers={"Accept-Language": "de"})
        response = client.get("/__edge/metrics")

        assert response.status_code == 200
        assert "langredirect_decisions_total" in response.text

    @pytest.mark.parametrize("path", ["/__edge", "/__edge/", "/__edge/unknown", "/__edge/health/extra"])
    def test_unknown_internal_paths_are_not_forwarded(self, make_client, origin, path):
        client = make_client()
        response = client.get(path, headers={"Accept-Language": "de"})

        assert response.status_code == 404
        assert origin.calls == []

    def test_scope_is_counted(self, make_client):
        client = make_client(listen_on_paths=["/shop/**"])
        client.get("/blog/post", headers={"Accept-Language": "de"})
        client.get("/shop/item", headers={"Accept-Language": "de"})
        response = client.get("/__edge/metrics")

        assert 'langredirect_request_scopes_total{scope="out-of-scope"}' in response.text
        assert 'langredirect_request_scopes_total{scope="in-scope"}' in response.text

    def test_injected_empty_store_is_used(self, make_client, memory_store):
        client = make_client()
        assert len(memory_store) == 0
        assert client.app.state.redirector.cache.store is memory_store

    def test_request_id_is_echoed(self, make_client):
        client = make_client()
        response = client.get("/foo", headers={"X-Request-ID": "abc-123"})
        assert response.headers["x-request-id"] == "abc-123"

