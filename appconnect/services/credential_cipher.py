"""Fernet encryption of credential secrets inside persisted snapshot images."""

import logging
from typing import Any, Dict, Iterable, List, Optional

from cryptography.fernet import Fernet, InvalidToken
from pydantic import ValidationError as SchemaError
from pydantic.alias_generators import to_camel

from appconnect.core.config import settings
from appconnect.schemas.connection import Connection, SECRET_FIELDS

logger = logging.getLogger("appconnect.cipher")


class CredentialCipher:
    """Encrypts ``password``/``api_key`` when a connection leaves memory.

    Everything else in the image stays readable so the remote record can be
    inspected and merged without the key.
    """

    def __init__(self, key: Optional[str] = None):
        key = key or settings.CREDENTIALS_KEY
        if not key:
            logger.warning(
                "CREDENTIALS_KEY is not set; using a per-process key. "
                "Cached secrets will not survive a restart."
            )
            key = Fernet.generate_key().decode()
        self._fernet = Fernet(key.encode() if isinstance(key, str) else key)

    def encrypt(self, value: str) -> str:
        return self._fernet.encrypt(value.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        """Raises InvalidToken for anything that is not a token from this key."""
        try:
            raw = token.encode("ascii")
        except (AttributeError, UnicodeEncodeError):
            raise InvalidToken
        return self._fernet.decrypt(raw).decode("utf-8")

    def dump_connection(self, connection: Connection) -> Dict[str, Any]:
        """Serialize one connection with its secrets encrypted."""
        data = connection.model_dump(mode="json", by_alias=True)
        credentials = connection.credentials
        if credentials is not None:
            for field in SECRET_FIELDS:
                secret = getattr(credentials, field, None)
                if secret is None:
                    continue
                plain = secret.get_secret_value()
                data["credentials"][to_camel(field)] = self.encrypt(plain) if plain else ""
        return data

    def load_connection(self, data: Dict[str, Any]) -> Connection:
        """Inverse of ``dump_connection``.

        A record whose secrets fail to decrypt (rotated or per-process key) is
        kept, but without credentials and disconnected.
        """
        data = dict(data)
        credentials = data.get("credentials")
        if isinstance(credentials, dict):
            credentials = dict(credentials)
            try:
                for field in SECRET_FIELDS:
                    alias = to_camel(field)
                    if credentials.get(alias):
                        credentials[alias] = self.decrypt(credentials[alias])
                data["credentials"] = credentials
            except InvalidToken:
                logger.warning(
                    "Could not decrypt credentials for %s; loading it without them",
                    data.get("id"),
                )
                data.update(
                    credentials=None,
                    status="disconnected",
                    statusMessage=None,
                    probeResult=None,
                )
        return Connection.model_validate(data)

    def dump_connections(self, connections: Iterable[Connection]) -> List[Dict[str, Any]]:
        return [self.dump_connection(c) for c in connections]

    def load_connections(self, raw: Any) -> List[Connection]:
        """Load a list image, skipping entries that no longer fit the schema."""
        if not isinstance(raw, list):
            return []
        loaded = []
        for entry in raw:
            if not isinstance(entry, dict):
                continue
            try:
                loaded.append(self.load_connection(entry))
            except SchemaError as e:
                logger.warning("Skipping unreadable connection %s: %s", entry.get("id"), e)
        return loaded
