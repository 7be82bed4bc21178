"""Id and display-name assignment for new connections."""

from typing import Iterable, Optional, Tuple

from appconnect.core.exceptions import DuplicateError
from appconnect.schemas.connection import Family, MULTI_INSTANCE_FAMILIES


def is_multi_instance(family: Family) -> bool:
    return Family(family) in MULTI_INSTANCE_FAMILIES


def count_instances(family: Family, existing_ids: Iterable[str]) -> int:
    """Number of ids equal to ``family`` or starting with ``family-``."""
    base = Family(family).value
    return sum(1 for i in existing_ids if i == base or i.startswith(base + "-"))


def singleton_id(family: Family, provider: Optional[str] = None) -> str:
    """``family`` alone, or ``family-provider`` when a provider is named."""
    base = Family(family).value
    return f"{base}-{provider}" if provider else base


class InstanceManager:
    """Assigns ids for new connections.

    Singleton families hold one connection per provider: PostgreSQL and MySQL
    can both be attached as relational databases, a second PostgreSQL cannot.
    Without a provider the id is the family itself.

    Multi-instance families number from the current count of matching ids,
    so removing an interior instance can hand out a suffix that is still in
    use (``workflow-api-3`` twice after removing ``workflow-api-2``). That
    numbering is kept as is; the registry refuses the colliding id with
    DuplicateError instead of overwriting the live record.
    """

    def assign(
        self,
        family: Family,
        existing_ids: Iterable[str],
        existing_keys: Iterable[Tuple[Family, Optional[str]]] = (),
        display_name: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> Tuple[str, str]:
        """Return ``(id, display_name)`` for a new connection of ``family``.

        ``existing_keys`` holds the ``(family, provider)`` pair of every
        registered connection.
        """
        family = Family(family)
        base = family.value

        if not is_multi_instance(family):
            if (family, provider or None) in set(existing_keys):
                label = f"{base} ({provider})" if provider else base
                raise DuplicateError(f"{label} is already configured")
            connection_id = singleton_id(family, provider)
            return connection_id, display_name or provider or base

        count = count_instances(family, existing_ids)
        if count == 0:
            return base, display_name or base
        number = count + 1
        return f"{base}-{number}", display_name or f"{base} {number}"
