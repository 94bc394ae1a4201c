from __future__ import annotations

import httpx

DEFAULT_PORT_HOST_TEMPLATE = "app-{port}"


def resolve_base_url(address: str, port_host_template: str = DEFAULT_PORT_HOST_TEMPLATE) -> httpx.URL:
    """Turn a configured address into a base URL.

    ``"5176"`` -> ``http://app-5176:5176`` (host from ``port_host_template``),
    ``"backend:9000"`` -> ``http://backend:9000``, full URIs are kept.
    """
    raw = (address or "").strip()
    if not raw:
        raise ValueError("empty address")
    if raw.isdigit():
        host = port_host_template.format(port=raw)
        return httpx.URL(f"http://{host}:{raw}")
    if "://" not in raw:
        raw = f"http://{raw}"
    return httpx.URL(raw.rstrip("/"))


def join_path(base: httpx.URL, path: bytes | str, query: bytes | str = b"") -> httpx.URL:
    """Append an already percent-encoded path (and query) to ``base``."""
    if isinstance(path, bytes):
        path = path.decode("ascii")
    if isinstance(query, bytes):
        query = query.decode("ascii")
    if not path.startswith("/"):
        path = "/" + path
    target = base.raw_path.split(b"?", 1)[0].decode("ascii").rstrip("/") + path
    if query:
        target = f"{target}?{query}"
    return base.copy_with(raw_path=target.encode("ascii"))


__all__ = ["DEFAULT_PORT_HOST_TEMPLATE", "resolve_base_url", "join_path"]
