"""ORM models exposed for easy imports."""

from .company_settings import CompanySettings
from .deduction import RctiDeduction, RctiDeductionApplication
from .driver import Driver
from .job import Job
from .rcti import Rcti, RctiLine, RctiStatusChange
from .user import User

__all__ = [
    "CompanySettings",
    "Driver",
    "Job",
    "Rcti",
    "RctiDeduction",
    "RctiDeductionApplication",
    "RctiLine",
    "RctiStatusChange",
    "User",
]
