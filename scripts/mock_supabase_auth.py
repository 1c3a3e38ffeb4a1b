#!/usr/bin/env python3
"""Local stand-in for the auth server's ``/auth/v1/user`` lookup.

Tokens only establish identity. Roles live in the application ``users``
table, so seed an admin with ``scripts/bootstrap_admin.py --user-id``.
"""

from __future__ import annotations

import argparse
import json
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

TOKEN_USERS: dict[str, dict[str, object]] = {
    "admin-token": {"id": "11111111-1111-1111-1111-111111111111", "email": "admin@ranao.test"},
    "employer-token": {"id": "22222222-2222-2222-2222-222222222222", "email": "employer@ranao.test"},
    "jobseeker-token": {"id": "33333333-3333-3333-3333-333333333333", "email": "jobseeker@ranao.test"},
    "newcomer-token": {"id": "44444444-4444-4444-4444-444444444444", "email": "newcomer@ranao.test"},
}


class MockAuthHandler(BaseHTTPRequestHandler):
    server_version = "MockAuth/1.0"

    def do_GET(self) -> None:  # noqa: N802 - stdlib handler signature
        if self.path == "/healthz":
            self._write_json(HTTPStatus.OK, {"status": "ok"})
            return

        if self.path != "/auth/v1/user":
            self._write_json(HTTPStatus.NOT_FOUND, {"detail": "not found"})
            return

        authorization = self.headers.get("Authorization", "")
        if not authorization.lower().startswith("bearer "):
            self._write_json(HTTPStatus.UNAUTHORIZED, {"detail": "missing bearer token"})
            return

        token = authorization.split(" ", maxsplit=1)[1].strip()
        user = TOKEN_USERS.get(token)
        if user is None:
            self._write_json(HTTPStatus.UNAUTHORIZED, {"detail": "invalid token"})
            return

        self._write_json(HTTPStatus.OK, {**user, "app_metadata": {}, "user_metadata": {}})

    def log_message(self, _: str, *args: object) -> None:
        if args:
            print("mock-auth:", *args)

    def _write_json(self, status: HTTPStatus, payload: dict[str, object]) -> None:
        raw = json.dumps(payload).encode("utf-8")
        self.send_response(status.value)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(raw)))
        self.end_headers()
        self.wfile.write(raw)


def main() -> None:
    parser = argparse.ArgumentParser(description="Serve a mock /auth/v1/user endpoint for local runs.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=54321)
    args = parser.parse_args()

    server = ThreadingHTTPServer((args.host, args.port), MockAuthHandler)
    print(f"mock-auth listening on http://{args.host}:{args.port}", flush=True)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
