"""FileNest service layer.

Business logic around file requests:
- Tier policy: limits per subscription tier
- RequestRepository: data access for requests, files, users and subscriptions
- AdmissionController: monthly request quota and upload limits
- ExpiryReconciler: deactivates requests past their tier lifetime
- ReminderNotifier: upload reminders with a per-request watermark
- IntegrityReconciler: orphaned request repair and orphaned file reporting
- EmailNotifier: SMTP delivery of templated notifications
"""

from filenest.services.admission import (
    AdmissionController,
    AdmissionDecision,
    AdmissionReason,
    OwnerIdentity,
    UploadDecision,
)
from filenest.services.context import PassContext
from filenest.services.expiry import ExpiryPassResult, ExpiryReconciler
from filenest.services.integrity import IntegrityFixResult, IntegrityReconciler, IntegrityReport
from filenest.services.notifier import EmailNotifier, Notifier, TemplateKind
from filenest.services.reminders import ReminderNotifier, ReminderPassResult
from filenest.services.repository import RequestRepository
from filenest.services.tier_policy import Limits, limits_for

__all__ = [
    "AdmissionController",
    "AdmissionDecision",
    "AdmissionReason",
    "EmailNotifier",
    "ExpiryPassResult",
    "ExpiryReconciler",
    "IntegrityFixResult",
    "IntegrityReconciler",
    "IntegrityReport",
    "Limits",
    "Notifier",
    "OwnerIdentity",
    "PassContext",
    "ReminderNotifier",
    "ReminderPassResult",
    "RequestRepository",
    "TemplateKind",
    "UploadDecision",
    "limits_for",
]
