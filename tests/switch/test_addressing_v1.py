import pytest

from apps.switch.addressing import join_path, resolve_base_url


@pytest.mark.parametrize(
    "address,expected",
    [
        ("5176", "http://app-5176:5176"),
        ("green.internal:9000", "http://green.internal:9000"),
        ("https://blue.example.com/", "https://blue.example.com"),
        ("http://10.0.0.7:8080/app", "http://10.0.0.7:8080/app"),
    ],
)
def test_resolve_base_url(address, expected):
    assert str(resolve_base_url(address)) == expected


def test_port_host_template_is_configurable():
    assert str(resolve_base_url("8001", "svc-{port}.local")) == "http://svc-8001.local:8001"


def test_empty_address_rejected():
    with pytest.raises(ValueError):
        resolve_base_url("  ")


def test_join_path_keeps_base_prefix_and_encoding():
    base = resolve_base_url("http://green:5177/base")
    assert str(join_path(base, b"/a%2Fb", b"q=1")) == "http://green:5177/base/a%2Fb?q=1"
    assert str(join_path(resolve_base_url("5176"), "/health")) == "http://app-5176:5176/health"
