"""Pass handlers for the FileNest worker.

Each handler runs one reconciliation pass over a session it is given:
- expiry: deactivate requests past their tier lifetime, warn before it
- reminders: remind recipients of pending requests
- integrity: repair orphaned requests, report orphaned files
"""

from filenest.worker.handlers.expiry import expiry_pass_handler
from filenest.worker.handlers.integrity import integrity_check_handler, integrity_fix_handler
from filenest.worker.handlers.reminders import reminder_pass_handler

__all__ = [
    "expiry_pass_handler",
    "integrity_check_handler",
    "integrity_fix_handler",
    "reminder_pass_handler",
]
