from api.utils.network import ip_allowed, resolve_client_ip


def test_empty_allowlist_allows_everyone():
    assert ip_allowed("203.0.113.9", [])
    assert ip_allowed(None, [])


def test_exact_and_cidr_entries():
    allow = ["52.66.101.190", "10.0.0.0/8"]
    assert ip_allowed("52.66.101.190", allow)
    assert ip_allowed("10.20.30.40", allow)
    assert not ip_allowed("52.66.101.191", allow)


def test_unknown_or_garbage_addresses_never_match():
    allow = ["not-an-ip", "10.0.0.0/8"]
    assert not ip_allowed(None, allow)
    assert not ip_allowed("garbage", allow)
    assert ip_allowed("10.1.1.1", allow)


def test_forwarding_headers_ignored_unless_trusted():
    headers = {"x-forwarded-for": "52.66.101.190, 10.0.0.2", "x-real-ip": "52.66.101.191"}
    assert resolve_client_ip(headers, "10.0.0.2") == "10.0.0.2"
    assert resolve_client_ip(headers, "10.0.0.2", trust_proxy_headers=True) == "52.66.101.190"
    assert resolve_client_ip({"x-real-ip": "52.66.101.191"}, "10.0.0.2", trust_proxy_headers=True) == "52.66.101.191"
    assert resolve_client_ip({}, None, trust_proxy_headers=True) is None
