"""Cloud Controller Mock for Integration Testing.

This module provides an in-memory implementation of the CloudController
protocol that enables testing the reconciler without a Cloud Foundry
deployment.

Key Features:
- In-memory state for security groups, service instances and organizations
- Error injection for transient and permanent failures
- Call recording for asserting on remote interactions

Usage:
    from cf_mock import MockCloudController, MockCloudControllerState

    state = MockCloudControllerState()
    client = MockCloudController(state, create_failures=2)

    reconciler = SecurityGroupReconciler(config, client)
    await reconciler.post_instance_provision_operations(options)

    assert client.call_count("create_security_group") == 3
"""

from .client import MockCall, MockCloudController
from .state import MockCloudControllerState

__all__ = [
    "MockCall",
    "MockCloudController",
    "MockCloudControllerState",
]
