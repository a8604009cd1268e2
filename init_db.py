"""Create the payroll tables for the configured database."""

from app.backend.src.db import create_schema, get_engine


def init_db() -> None:
    engine = get_engine()
    print(f"Connecting to {engine.url.render_as_string(hide_password=True)}")
    create_schema()
    print("Payroll tables created.")


if __name__ == "__main__":
    init_db()
