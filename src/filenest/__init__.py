"""FileNest - file-request service.

A requester creates an upload link, a recipient uploads files against it,
and the request expires according to the requester's subscription tier.
Background reconcilers keep request state consistent over time.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
