"""FileNest worker service.

Runs the background reconciliation passes:
- Expiry: deactivate requests past their tier lifetime, warn before it
- Reminders: remind recipients of pending requests near their deadline
- Integrity: link orphaned requests to users once at start

Usage:
    # Run as module
    python -m filenest.worker

    # Or via the console script
    filenest-worker
"""

from filenest.worker.main import Worker, WorkerConfig, run

__all__ = ["Worker", "WorkerConfig", "run"]
