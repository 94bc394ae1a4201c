from __future__ import annotations

import argparse
import json
import os
from typing import Any, Dict, List

import httpx

DEFAULT_URL = os.getenv("BLUEGREEN_CTL_URL", "http://127.0.0.1:8080")


def _print(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True))


def _request(args: argparse.Namespace, method: str, path: str, body: Dict[str, Any] | None = None) -> httpx.Response:
    with httpx.Client(base_url=args.url, timeout=args.timeout) as client:
        return client.request(method, path, json=body)


def cmd_status(args: argparse.Namespace) -> int:
    resp = _request(args, "GET", "/api/status")
    resp.raise_for_status()
    data = resp.json()
    if args.json:
        _print(data)
        return 0
    status = data["status"]
    config = data["config"]
    print(f"[bgctl] {config['service_name']} active={status['active']}")
    for env in ("blue", "green"):
        st = status[env]
        marker = "*" if status["active"] == env else " "
        health = "healthy" if st["healthy"] else "unhealthy"
        print(f" {marker} {env:<5} {config[env + '_address']:<24} {health:<9} version={st['version']} checked={st['last_checked']}")
    return 0


def cmd_switch(args: argparse.Namespace) -> int:
    body = {"from": args.from_env} if args.from_env else None
    resp = _request(args, "POST", "/api/switch", body)
    data = resp.json()
    if data.get("status") == "success":
        print(f"[bgctl] switched {data['old']} → {data['current']}")
        return 0
    print(f"[bgctl] switch refused: {data.get('error')} ({data.get('code')})")
    return 2


def cmd_config(args: argparse.Namespace) -> int:
    if args.blue is None and args.green is None:
        resp = _request(args, "GET", "/api/config")
        resp.raise_for_status()
        _print(resp.json())
        return 0
    if args.blue is None or args.green is None:
        # 부분 갱신은 허용하지 않음: 현재 값을 읽어와 채움
        current = _request(args, "GET", "/api/config").json()
        args.blue = args.blue if args.blue is not None else current["blue_address"]
        args.green = args.green if args.green is not None else current["green_address"]
    resp = _request(args, "POST", "/api/config", {"blue_address": args.blue, "green_address": args.green})
    data = resp.json()
    if data.get("status") == "success":
        print("[bgctl] configuration updated")
        return 0
    print(f"[bgctl] configuration rejected: {data.get('error')}")
    return 2


def cmd_serve(args: argparse.Namespace) -> int:
    from apps.gateway.main import main as serve_main

    serve_main()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bgctl", description="Blue/green traffic switch control")
    parser.add_argument("--url", default=DEFAULT_URL, help="controller base URL")
    parser.add_argument("--timeout", type=float, default=5.0, help="request timeout in seconds")
    sub = parser.add_subparsers(dest="command", required=True)

    p_status = sub.add_parser("status", help="show active environment and probe results")
    p_status.add_argument("--json", action="store_true", help="raw JSON output")
    p_status.set_defaults(func=cmd_status)

    p_switch = sub.add_parser("switch", help="promote the inactive environment")
    p_switch.add_argument("--from", dest="from_env", choices=["blue", "green"], help="expected active environment")
    p_switch.set_defaults(func=cmd_switch)

    p_config = sub.add_parser("config", help="show or update environment addresses")
    p_config.add_argument("--blue", help="blue address (port, host:port or URI)")
    p_config.add_argument("--green", help="green address (port, host:port or URI)")
    p_config.set_defaults(func=cmd_config)

    p_serve = sub.add_parser("serve", help="run the controller (settings from BLUEGREEN_* env)")
    p_serve.set_defaults(func=cmd_serve)
    return parser


def main(argv: List[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    try:
        code = args.func(args)
    except httpx.HTTPError as exc:
        raise SystemExit(f"[bgctl] request failed: {exc}") from exc
    raise SystemExit(code)


if __name__ == "__main__":
    main()
