"""Error taxonomy for trigger configuration and polling failures."""

from __future__ import annotations

from typing import Any, Dict, Optional


class TriggerError(Exception):
    """Base class for errors raised while configuring or running a trigger."""


class ConfigurationError(TriggerError):
    """A required trigger setting is missing or malformed.

    Raised before any request is made, so the checkpoint is never touched.
    """


class SalesforceApiError(TriggerError):
    """Salesforce REST call failed (transport error or non-2xx response)."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code

    def __str__(self) -> str:
        parts = []
        if self.status_code is not None:
            parts.append(f"HTTP {self.status_code}")
        if self.error_code:
            parts.append(self.error_code)
        parts.append(self.message)
        return ": ".join(parts)


class FetchError(TriggerError):
    """Building or executing the change query failed for a trigger instance."""

    def __init__(
        self,
        cause: BaseException,
        trigger_id: Optional[str] = None,
        selector: Optional[str] = None,
        resource: Optional[str] = None,
    ):
        self.cause = cause
        self.trigger_id = trigger_id
        self.selector = selector
        self.resource = resource
        super().__init__(str(self))

    def __str__(self) -> str:
        where = f"trigger '{self.trigger_id}'" if self.trigger_id else "trigger"
        return f"Polling {self.resource or '?'} ({self.selector or '?'}) failed for {where}: {self.cause}"

    def context(self) -> Dict[str, Any]:
        return {
            "trigger_id": self.trigger_id,
            "selector": self.selector,
            "resource": self.resource,
            "error": str(self.cause),
        }


class TriggerNotFoundError(TriggerError, LookupError):
    """No trigger definition exists with the requested id."""
