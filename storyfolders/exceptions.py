"""Application-level exception types.

Convention:
- ``InternalServerError``: for errors whose details must never reach clients
  (registry integrity failures, unexpected storage state, etc.). The global
  handler logs the full message at ERROR and returns a generic
  "Internal server error" (500) to the client.
- ``ValueError``: for validation errors that are safe to forward to clients
  (invalid folder names, unknown sort fields, etc.). The global ``ValueError``
  handler returns ``str(exc)`` as the 422 detail.
- ``UnusableRootError``: raised at startup when no writable root directory
  can be found. Nothing can run safely without a sandbox root, so this is the
  one error the application lets terminate the process.
"""

from __future__ import annotations


class InternalServerError(Exception):
    """Raised for internal errors whose details must not be exposed to clients.

    The global exception handler in ``storyfolders/main.py`` catches this, logs
    the full message server-side, and returns HTTP 500 with a generic
    ``"Internal server error"`` detail.
    """


class UnusableRootError(RuntimeError):
    """Raised when neither the requested nor any fallback root is writable."""
