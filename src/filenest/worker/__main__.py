"""Allow running the worker with ``python -m filenest.worker``."""

from filenest.worker.main import run

run()
