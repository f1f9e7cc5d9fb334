"""Security group rule building and name derivation.

Pure functions: no I/O, no state.
"""

from __future__ import annotations

from .models import IpRuleOptions, ProvisionOptions, SecurityGroupRule

# Ephemeral port range used when the caller supplies no access ports
DEFAULT_PORT_RANGE = "1024-65535"


def security_group_name(prefix: str, instance_guid: str) -> str:
    """Derive the security group name for a service instance.

    The name is the natural key of the group: the Cloud Controller offers no
    idempotency key on create, so the same instance must always map to the
    same name.
    """
    return f"{prefix}-{instance_guid}"


def build_security_group_rule(options: IpRuleOptions) -> SecurityGroupRule:
    """Build one rule from a declarative ingress intent.

    Multi-address destinations are encoded as ``first-last`` of the supplied
    list. Interior addresses are not enumerated, so callers must supply
    contiguous, ordered ranges.

    Args:
        options: Ingress intent (protocol, ips, optional access ports).

    Returns:
        The immutable rule.
    """
    ports = DEFAULT_PORT_RANGE
    if options.application_access_ports:
        ports = ",".join(str(port) for port in options.application_access_ports)

    if len(options.ips) == 1:
        destination = options.ips[0]
    else:
        destination = f"{options.ips[0]}-{options.ips[-1]}"

    return SecurityGroupRule(protocol=options.protocol, destination=destination, ports=ports)


def build_security_group_rules(options: ProvisionOptions) -> list[SecurityGroupRule]:
    """Build all rules of an instance, preserving caller order."""
    return [build_security_group_rule(rule_options) for rule_options in options.ip_rule_options]
