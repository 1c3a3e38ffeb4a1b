#!/usr/bin/env python3
"""Emit deterministic SQL that promotes an account to the admin role."""

from __future__ import annotations

import argparse


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def render_sql(*, user_id: str | None, email: str | None, actor: str) -> str:
    actor_value = _quote_sql(actor)

    if user_id:
        user_value = _quote_sql(user_id)
        upsert = f"""insert into users (id, role, active_role)
values ({user_value}, 'admin'::user_role, null)
on conflict (id) do update set role = excluded.role, active_role = null;"""
        activity = f"""insert into activity_log (user_id, type, description, metadata)
values ({user_value}, 'admin_bootstrap', 'Granted admin role', jsonb_build_object('actor', {actor_value}));"""
    else:
        assert email is not None
        email_value = _quote_sql(email)
        upsert = f"""insert into users (id, email, role, active_role)
select id::text, email, 'admin'::user_role, null
from auth.users
where email = {email_value}
on conflict (id) do update set role = excluded.role, active_role = null;"""
        activity = f"""insert into activity_log (user_id, type, description, metadata)
select id::text, 'admin_bootstrap', 'Granted admin role', jsonb_build_object('actor', {actor_value}, 'email', {email_value})
from auth.users
where email = {email_value};"""

    return f"""-- ranao-jobs admin bootstrap SQL
-- Run this in a privileged Postgres session against the application database.

{upsert}

{activity}
"""


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to grant the admin role to an account.")
    identity_group = parser.add_mutually_exclusive_group(required=True)
    identity_group.add_argument("--user-id", help="Auth provider user id")
    identity_group.add_argument("--email", help="Auth provider email (resolved through auth.users)")
    parser.add_argument(
        "--actor",
        default="system",
        help="Actor label recorded in the activity log metadata",
    )
    args = parser.parse_args()

    print(render_sql(user_id=args.user_id, email=args.email, actor=args.actor))


if __name__ == "__main__":
    main()
