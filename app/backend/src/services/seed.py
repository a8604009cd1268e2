"""Utilities for seeding development data."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy.orm import Session

from app.backend.src.models import CompanySettings, Driver, Job, RctiDeduction, User

DEFAULT_USER_EMAIL = "payroll@worklog.example"
DEFAULT_USER_NAME = "Payroll Admin"
DEFAULT_USER_ROLE = "admin"
DEFAULT_DRIVER_NAME = "Demo Contractor"


@dataclass
class SeedResult:
    """Information about the seeded records."""

    user: User
    driver: Driver
    user_created: bool
    driver_created: bool
    jobs_created: int
    week_ending: date


def _last_sunday(today: date) -> date:
    return today - timedelta(days=today.weekday() + 1)


def seed_development_data(
    session: Session,
    *,
    user_email: str = DEFAULT_USER_EMAIL,
    user_name: str = DEFAULT_USER_NAME,
    user_role: str = DEFAULT_USER_ROLE,
    driver_name: str = DEFAULT_DRIVER_NAME,
    auth0_sub: str | None = None,
    today: date | None = None,
) -> SeedResult:
    """Ensure an admin, issuer settings and a contractor with a week of jobs exist.

    Jobs are only added for a newly created driver so reseeding never
    duplicates work already invoiced.
    """

    user = session.query(User).filter(User.email == user_email).one_or_none()
    user_created = user is None
    if user is None:
        user = User(email=user_email, name=user_name, role=user_role, auth0_sub=auth0_sub)
        session.add(user)
    else:
        user.role = user_role
        if auth0_sub:
            user.auth0_sub = auth0_sub

    if session.query(CompanySettings).first() is None:
        session.add(
            CompanySettings(
                company_name="WorkLog Transport Pty Ltd",
                company_abn="12 345 678 901",
                company_address="1 Depot Road, Brisbane QLD 4000",
            )
        )

    week_ending = _last_sunday(today or date.today())
    driver = session.query(Driver).filter(Driver.driver == driver_name).one_or_none()
    driver_created = driver is None
    jobs_created = 0
    if driver is None:
        driver = Driver(
            driver=driver_name,
            type="Contractor",
            business_name="Demo Haulage",
            abn="98 765 432 109",
            gst_status="registered",
            gst_mode="exclusive",
            breaks=0.5,
            tray=85.0,
            crane=110.0,
            semi=120.0,
            semi_crane=140.0,
        )
        session.add(driver)
        session.flush()

        for offset, (truck_type, hours) in enumerate(
            [("Tray", 8.5), ("Tray", 6.0), ("Crane", 9.0), ("Semi", 10.0)]
        ):
            session.add(
                Job(
                    job_date=week_ending - timedelta(days=6 - offset),
                    driver=driver.driver,
                    customer="Acme Construction",
                    truck_type=truck_type,
                    pickup="Depot",
                    dropoff=f"Site {offset + 1}",
                    charged_hours=hours,
                )
            )
            jobs_created += 1

        session.add(
            RctiDeduction(
                driver_id=driver.id,
                type="deduction",
                description="Fuel card advance",
                total_amount=300.0,
                amount_paid=0.0,
                amount_remaining=300.0,
                frequency="weekly",
                amount_per_cycle=100.0,
                status="active",
                start_date=week_ending - timedelta(days=6),
            )
        )

    session.flush()
    return SeedResult(
        user=user,
        driver=driver,
        user_created=user_created,
        driver_created=driver_created,
        jobs_created=jobs_created,
        week_ending=week_ending,
    )


__all__ = ["SeedResult", "seed_development_data"]
