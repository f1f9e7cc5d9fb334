"""Tests for result-typed security group lookups."""

import pytest
from azure.core.exceptions import HttpResponseError

from cf_mock import MockCloudController
from sgreconciler.lookup import Absent, Failed, Found, lookup_security_group


class TestLookupSecurityGroup:
    """Tests for lookup_security_group."""

    @pytest.mark.asyncio
    async def test_found(self) -> None:
        """Test an existing group is returned as Found."""
        client = MockCloudController()
        group = client.state.put_security_group("sf-abc-123", guid="g-1")

        result = await lookup_security_group(client, "sf-abc-123")

        assert result == Found(resource=group)

    @pytest.mark.asyncio
    async def test_absent(self) -> None:
        """Test a missing group is returned as Absent."""
        client = MockCloudController()

        result = await lookup_security_group(client, "sf-abc-123")

        assert isinstance(result, Absent)
        assert result.name == "sf-abc-123"
        assert "sf-abc-123" in result.detail

    @pytest.mark.asyncio
    async def test_failed_keeps_original_error(self) -> None:
        """Test other errors are returned as Failed with the same exception."""
        error = HttpResponseError(message="boom")
        client = MockCloudController(lookup_error=error)

        result = await lookup_security_group(client, "sf-abc-123")

        assert isinstance(result, Failed)
        assert result.error is error
