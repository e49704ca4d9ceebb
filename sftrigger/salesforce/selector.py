"""Change selectors: which Salesforce object to watch and for what kind of change."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from sftrigger.core.errors import ConfigurationError

CUSTOM_OBJECT = "CustomObject"


class ChangeKind(str, Enum):
    CREATED = "Created"
    UPDATED = "Updated"


@dataclass(frozen=True)
class ChangeSelector:
    """Resource + change kind pair driving which filter a poll builds.

    ``resource`` is either a built-in object name (``Opportunity``) or the
    ``CustomObject`` placeholder, in which case ``custom_object`` carries the
    actual API name (``Invoice__c``).
    """

    resource: str
    change_kind: ChangeKind
    custom_object: Optional[str] = None

    @classmethod
    def parse(cls, trigger_on: str, custom_object: Optional[str] = None) -> "ChangeSelector":
        """Decode a combined selection value such as ``opportunityUpdated``."""
        value = (trigger_on or "").strip()
        for kind in ChangeKind:
            if value.endswith(kind.value):
                prefix = value[: -len(kind.value)]
                break
        else:
            raise ConfigurationError(
                f"Unknown trigger selection '{trigger_on}': must end with "
                + " or ".join(k.value for k in ChangeKind)
            )

        if not prefix:
            raise ConfigurationError(f"Trigger selection '{trigger_on}' names no resource")

        # Only the first character changes case; object names are case-sensitive.
        resource = prefix[0].upper() + prefix[1:]
        return cls(resource=resource, change_kind=kind, custom_object=custom_object)

    @property
    def is_custom(self) -> bool:
        return self.resource == CUSTOM_OBJECT

    @property
    def resolved_resource(self) -> str:
        """Object name to query; custom selections require ``custom_object``."""
        if self.is_custom:
            name = (self.custom_object or "").strip()
            if not name:
                raise ConfigurationError(
                    f"Trigger '{self.trigger_on}' needs a custom object name"
                )
            return name
        return self.resource

    @property
    def trigger_on(self) -> str:
        return self.resource[0].lower() + self.resource[1:] + self.change_kind.value

    def __str__(self) -> str:
        if self.is_custom and self.custom_object:
            return f"{self.trigger_on}:{self.custom_object}"
        return self.trigger_on


def _option(resource: str, kind: ChangeKind, description: str) -> Dict[str, str]:
    label = "Custom Object" if resource == CUSTOM_OBJECT else resource
    return {
        "name": f"{label} {kind.value}",
        "value": ChangeSelector(resource, kind).trigger_on,
        "description": description,
    }


TRIGGER_ON_OPTIONS: List[Dict[str, str]] = [
    _option("Account", ChangeKind.CREATED, "When a new account is created"),
    _option("Account", ChangeKind.UPDATED, "When an existing account is modified"),
    _option("Attachment", ChangeKind.CREATED, "When a file is uploaded and attached to an object"),
    _option("Attachment", ChangeKind.UPDATED, "When an existing file is modified"),
    _option("Case", ChangeKind.CREATED, "When a new case is created"),
    _option("Case", ChangeKind.UPDATED, "When an existing case is modified"),
    _option("Contact", ChangeKind.CREATED, "When a new contact is created"),
    _option("Contact", ChangeKind.UPDATED, "When an existing contact is modified"),
    _option(CUSTOM_OBJECT, ChangeKind.CREATED, "When a new object of a given type is created"),
    _option(CUSTOM_OBJECT, ChangeKind.UPDATED, "When an object of a given type is modified"),
    _option("Lead", ChangeKind.CREATED, "When a new lead is created"),
    _option("Lead", ChangeKind.UPDATED, "When an existing lead is modified"),
    _option("Opportunity", ChangeKind.CREATED, "When a new opportunity is created"),
    _option("Opportunity", ChangeKind.UPDATED, "When an existing opportunity is modified"),
    _option("Task", ChangeKind.CREATED, "When a new task is created"),
    _option("Task", ChangeKind.UPDATED, "When an existing task is modified"),
    _option("User", ChangeKind.CREATED, "When a new user is created"),
    _option("User", ChangeKind.UPDATED, "When an existing user is modified"),
]
