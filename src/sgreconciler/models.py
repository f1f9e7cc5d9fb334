"""Pydantic models for provisioning options and Cloud Controller resources.

These models provide:
1. Type-safe parsing of caller-supplied provisioning options
2. Validation at the boundary (fail fast, fail loudly)
3. Clean transformation from Cloud Controller v2 resource envelopes
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, Field, field_validator

# =============================================================================
# Provisioning Options (caller-supplied)
# =============================================================================


class IpRuleOptions(BaseModel):
    """Declarative ingress intent for one security group rule.

    The protocol is passed through as given; the Cloud Controller validates it.
    """

    model_config = {"extra": "ignore", "populate_by_name": True}

    protocol: str
    ips: Annotated[list[str], Field(min_length=1)]
    application_access_ports: list[str | int] | None = Field(
        None, alias="applicationAccessPorts"
    )


class InstanceContext(BaseModel):
    """Tenant scoping data of a service instance.

    Either identifier may be missing; the reconciler looks up what it needs.
    """

    model_config = {"extra": "ignore", "populate_by_name": True}

    platform: str = "cloudfoundry"
    space_guid: str | None = None
    organization_guid: str | None = None


class InstanceRef(BaseModel):
    """The part of an options record that identifies the instance.

    Delete only needs this much, so rule intents are not parsed there.
    """

    model_config = {"extra": "ignore", "populate_by_name": True}

    guid: Annotated[str, Field(min_length=1)]
    context: InstanceContext = Field(default_factory=InstanceContext)

    @field_validator("guid")
    @classmethod
    def validate_guid(cls, v: str) -> str:
        if v != v.strip() or any(c.isspace() for c in v):
            raise ValueError("guid must not contain whitespace")
        return v


class ProvisionOptions(InstanceRef):
    """Options record describing one service instance lifecycle operation."""

    ip_rule_options: list[IpRuleOptions] = Field(default_factory=list, alias="ipRuleOptions")


# =============================================================================
# Cloud Controller Resources
# =============================================================================


class SecurityGroupRule(BaseModel):
    """A single ingress rule. Immutable once built."""

    model_config = {"frozen": True}

    protocol: str
    destination: str
    ports: str

    def to_payload(self) -> dict[str, str]:
        """Convert to the Cloud Controller rule representation."""
        return {
            "protocol": self.protocol,
            "destination": self.destination,
            "ports": self.ports,
        }


def _metadata_guid(resource: dict[str, Any]) -> str:
    return resource.get("metadata", {}).get("guid", "")


class SecurityGroup(BaseModel):
    """A Cloud Controller application security group."""

    model_config = {"extra": "ignore"}

    guid: str
    name: str
    rules: list[SecurityGroupRule] = Field(default_factory=list)
    space_guids: list[str] = Field(default_factory=list)

    @classmethod
    def from_resource(cls, resource: dict[str, Any]) -> SecurityGroup:
        """Build from a v2 ``{"metadata": ..., "entity": ...}`` envelope."""
        entity = resource.get("entity", {})
        return cls(
            guid=_metadata_guid(resource),
            name=entity.get("name", ""),
            rules=[
                SecurityGroupRule(
                    protocol=rule.get("protocol", ""),
                    destination=rule.get("destination", ""),
                    ports=str(rule.get("ports", "")),
                )
                for rule in entity.get("rules") or []
            ],
            # Create responses echo space_guids; inlined lookups carry spaces
            space_guids=entity.get("space_guids")
            or [space.get("metadata", {}).get("guid", "") for space in entity.get("spaces") or []],
        )


class ServiceInstance(BaseModel):
    """The subset of a service instance the reconciler reads."""

    model_config = {"extra": "ignore"}

    guid: str
    name: str = ""
    space_guid: str

    @classmethod
    def from_resource(cls, resource: dict[str, Any]) -> ServiceInstance:
        entity = resource.get("entity", {})
        return cls(
            guid=_metadata_guid(resource),
            name=entity.get("name", ""),
            space_guid=entity.get("space_guid", ""),
        )


class Organization(BaseModel):
    """The subset of an organization the tenant policy gate reads."""

    model_config = {"extra": "ignore"}

    guid: str
    name: str

    @classmethod
    def from_resource(cls, resource: dict[str, Any]) -> Organization:
        return cls(
            guid=_metadata_guid(resource),
            name=resource.get("entity", {}).get("name", ""),
        )
