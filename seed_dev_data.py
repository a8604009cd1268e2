"""Seed the development database with a demo contractor, jobs and an admin."""

import os

from app.backend.src.db import create_schema, session_scope
from app.backend.src.services.seed import seed_development_data


def main() -> None:
    """Create tables (if needed) and ensure demo records exist."""

    create_schema()

    with session_scope() as session:
        auth0_sub = os.environ.get("AUTH0_DEMO_SUB")
        result = seed_development_data(session, auth0_sub=auth0_sub)

        print("Development data ready.")
        print(
            f"User ({'created' if result.user_created else 'updated'}): "
            f"{result.user.name} <{result.user.email}> [role={result.user.role}]"
        )
        print(
            f"Driver ({'created' if result.driver_created else 'unchanged'}): "
            f"{result.driver.driver} [id={result.driver.id}], "
            f"{result.jobs_created} jobs for week ending {result.week_ending.isoformat()}"
        )
        if not auth0_sub:
            print("Set AUTH0_DEMO_SUB to link an Auth0 subject during seeding.")


if __name__ == "__main__":
    main()
