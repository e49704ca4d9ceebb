"""Credential resolution for Salesforce REST calls."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from sftrigger.core.config import settings
from sftrigger.core.errors import ConfigurationError


@dataclass(frozen=True)
class AccessToken:
    access_token: str
    instance_url: str

    @property
    def authorization(self) -> str:
        return f"Bearer {self.access_token}"


class CredentialResolver(ABC):
    """Supplies a bearer token and the org's instance URL."""

    @abstractmethod
    async def resolve(self) -> AccessToken:
        ...


class StaticCredentialResolver(CredentialResolver):
    """Uses a token obtained out of band (connected app, CLI, secrets manager)."""

    def __init__(self, instance_url: Optional[str] = None, access_token: Optional[str] = None):
        self.instance_url = instance_url if instance_url is not None else settings.SALESFORCE_INSTANCE_URL
        self.access_token = access_token if access_token is not None else settings.SALESFORCE_ACCESS_TOKEN

    async def resolve(self) -> AccessToken:
        if not self.instance_url:
            raise ConfigurationError("SALESFORCE_INSTANCE_URL is not configured")
        if not self.access_token:
            raise ConfigurationError("SALESFORCE_ACCESS_TOKEN is not configured")
        return AccessToken(access_token=self.access_token, instance_url=self.instance_url.rstrip("/"))
