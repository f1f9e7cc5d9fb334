"""Result-typed security group lookups.

A name lookup has three outcomes the reconciler treats differently: the group
exists, the group is absent, or the lookup itself failed. Returning them as
values lets callers use ``match`` instead of catching not-found subtypes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from azure.core.exceptions import ResourceNotFoundError

from .cloud_controller import CloudController
from .models import SecurityGroup

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Found:
    """The security group exists."""

    resource: SecurityGroup


@dataclass(frozen=True)
class Absent:
    """No security group with this name exists."""

    name: str
    detail: str = ""


@dataclass(frozen=True)
class Failed:
    """The lookup failed for a reason other than absence.

    The original exception is kept so callers can re-raise it unchanged.
    """

    error: Exception


LookupResult = Found | Absent | Failed


async def lookup_security_group(client: CloudController, name: str) -> LookupResult:
    """Look up a security group by name without raising.

    Args:
        client: Cloud Controller client.
        name: Derived security group name.

    Returns:
        Found, Absent or Failed.
    """
    try:
        resource = await client.find_security_group_by_name(name)
    except ResourceNotFoundError as e:
        return Absent(name=name, detail=str(e))
    except Exception as e:
        logger.debug(
            "Security group lookup failed",
            extra={"security_group": name, "error_type": type(e).__name__},
        )
        return Failed(error=e)
    return Found(resource=resource)
