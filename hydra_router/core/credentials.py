"""
Credential handle resolution
"""

import os
from abc import ABC, abstractmethod
from typing import Dict, Optional


class CredentialProvider(ABC):
    """Resolves opaque credential handles to secrets at call time"""

    @abstractmethod
    def resolve(self, handle: Optional[str]) -> Optional[str]:
        """Secret for a handle, or None when it does not resolve"""

    def is_available(self, handle: Optional[str]) -> bool:
        """Keyless providers (handle None) are always available"""
        if handle is None:
            return True
        value = self.resolve(handle)
        return bool(value and value.strip())


class EnvCredentialProvider(CredentialProvider):
    """Treats each handle as the name of an environment variable"""

    def resolve(self, handle: Optional[str]) -> Optional[str]:
        if handle is None:
            return None
        return os.getenv(handle)


class StaticCredentialProvider(CredentialProvider):
    """Fixed handle -> secret mapping, for embedding and tests"""

    def __init__(self, secrets: Dict[str, str]):
        self._secrets = dict(secrets)

    def resolve(self, handle: Optional[str]) -> Optional[str]:
        if handle is None:
            return None
        return self._secrets.get(handle)
