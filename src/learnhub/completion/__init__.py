"""Course and program completion rules."""

from .models import COMPLETION_TABLES_CQL, Submission, SubmissionStatus
from .service import CompletionEvaluator
from .submissions import SubmissionStore


__all__ = [
    "COMPLETION_TABLES_CQL",
    "CompletionEvaluator",
    "Submission",
    "SubmissionStatus",
    "SubmissionStore",
]
