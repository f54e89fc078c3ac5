"""
Service layer helpers that orchestrate the repository and domain logic.
"""

from .coverage import CoverageService
from .payroll import PayrollService
from .repository import LessonRepositoryProtocol
from .scheduling import SchedulingService
from .transfer import TransferService

__all__ = [
    "CoverageService",
    "LessonRepositoryProtocol",
    "PayrollService",
    "SchedulingService",
    "TransferService",
]
