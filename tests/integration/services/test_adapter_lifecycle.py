"""Integration tests for adapter reconciliation and OpenBao bootstrap.

These tests drive the services through their real HTTP clients, with respx
standing in for the platform and OpenBao APIs.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
import respx
from httpx import Response

from dev_stack_manager.core.config.models import StackConfig
from dev_stack_manager.integrations.openbao.models import InitKeys
from dev_stack_manager.integrations.platform.client import PlatformClient
from dev_stack_manager.integrations.platform.config import PlatformConnectionConfig
from dev_stack_manager.services.openbao_manager import (
    InstallOutcome,
    OpenBaoConfigurator,
    VaultAdapterInstaller,
)
from dev_stack_manager.services.reconciler import AdapterReconciler, AdapterSpec, ResourceState

PLATFORM_URL = "http://platform.test"
OPENBAO_URL = "http://localhost:8200/v1"


def _adapter_body(active: bool, properties: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "data": {
            "name": "Vault",
            "properties": {"type": "HashiCorpVault", "properties": properties or {}},
        },
        "metadata": {"isActive": active},
    }


@pytest.fixture
def platform_client() -> PlatformClient:
    """Real platform client against the mocked base URL."""
    return PlatformClient(PlatformConnectionConfig(base_url=PLATFORM_URL, retries=1))


@pytest.fixture
def vault_spec() -> AdapterSpec:
    """Desired Vault adapter state."""
    return AdapterSpec(
        name="Vault",
        adapter_type="HashiCorpVault",
        properties={"host": "openbao", "port": 8200},
        configured=lambda adapter: bool(adapter.properties.get("host")),
        activation_timeout=10,
        activation_interval=2,
    )


class TestAdapterLifecycle:
    """Full create, configure and activate cycle over HTTP."""

    @pytest.mark.integration
    @respx.mock
    def test_absent_adapter_is_created_configured_and_activated(
        self, platform_client: PlatformClient, vault_spec: AdapterSpec, no_sleep: Any
    ) -> None:
        """A missing adapter ends active after one create and one configure."""
        lookup = respx.get(f"{PLATFORM_URL}/adapters/Vault").mock(
            side_effect=[
                Response(500, json={"message": "Adapter not found"}),
                Response(200, json=_adapter_body(active=False)),
                Response(200, json=_adapter_body(active=False, properties={"host": "openbao"})),
                Response(200, json=_adapter_body(active=True, properties={"host": "openbao"})),
            ]
        )
        create = respx.post(f"{PLATFORM_URL}/adapters").mock(
            return_value=Response(200, json={"status": "OK"})
        )
        configure = respx.put(f"{PLATFORM_URL}/adapters/Vault/properties").mock(
            return_value=Response(200, json={"status": "OK"})
        )

        with platform_client:
            result = AdapterReconciler(platform_client, sleep=no_sleep).reconcile(vault_spec)

        assert result.initial_state == ResourceState.NOT_FOUND
        assert result.created
        assert result.configured
        assert result.active
        assert result.warnings == []
        assert lookup.call_count == 4
        assert create.call_count == 1
        assert json.loads(create.calls.last.request.content)["properties"]["name"] == "Vault"
        assert json.loads(configure.calls.last.request.content) == {
            "properties": {"host": "openbao", "port": 8200}
        }
        assert no_sleep.calls == [2]

    @pytest.mark.integration
    @respx.mock
    def test_second_run_makes_no_writes(
        self, platform_client: PlatformClient, vault_spec: AdapterSpec, no_sleep: Any
    ) -> None:
        """A configured, active adapter is left alone."""
        respx.get(f"{PLATFORM_URL}/adapters/Vault").mock(
            return_value=Response(200, json=_adapter_body(active=True, properties={"host": "x"}))
        )
        create = respx.post(f"{PLATFORM_URL}/adapters")
        configure = respx.put(f"{PLATFORM_URL}/adapters/Vault/properties")

        with platform_client:
            result = AdapterReconciler(platform_client, sleep=no_sleep).reconcile(vault_spec)

        assert result.initial_state == ResourceState.EXISTS_CONFIGURED
        assert not result.changed
        assert not create.called
        assert not configure.called

    @pytest.mark.integration
    @respx.mock
    def test_concurrent_create_resolves_existing(
        self, platform_client: PlatformClient, vault_spec: AdapterSpec, no_sleep: Any
    ) -> None:
        """A duplicate answer on create falls back to the existing adapter."""
        respx.get(f"{PLATFORM_URL}/adapters/Vault").mock(
            side_effect=[
                Response(404),
                Response(200, json=_adapter_body(active=True, properties={"host": "openbao"})),
            ]
        )
        respx.post(f"{PLATFORM_URL}/adapters").mock(
            return_value=Response(500, json={"message": "Duplicate key: Vault already exists"})
        )
        configure = respx.put(f"{PLATFORM_URL}/adapters/Vault/properties")

        with platform_client:
            result = AdapterReconciler(platform_client, sleep=no_sleep).reconcile(vault_spec)

        assert not result.created
        assert result.active
        assert not configure.called


class TestOpenBaoBootstrap:
    """OpenBao init, unseal and KV setup over HTTP."""

    @pytest.fixture
    def installer(self, temp_dir: Path) -> MagicMock:
        """Installer that finds no git, so the adapter step is skipped."""
        mock_installer = MagicMock(spec=VaultAdapterInstaller)
        mock_installer.install.return_value = InstallOutcome.SKIPPED
        mock_installer.target_dir = temp_dir / "adapters" / "missing"
        return mock_installer

    @pytest.mark.integration
    @respx.mock
    def test_fresh_server(
        self,
        stack_config: StackConfig,
        installer: MagicMock,
        no_sleep: Any,
    ) -> None:
        """A new server is initialized, unsealed and seeded; keys land on disk."""
        config = stack_config.model_copy(update={"openbao_enabled": True})
        respx.get(f"{OPENBAO_URL}/sys/health").mock(return_value=Response(200, json={}))
        respx.get(f"{OPENBAO_URL}/sys/init").mock(
            return_value=Response(200, json={"initialized": False})
        )
        init = respx.post(f"{OPENBAO_URL}/sys/init").mock(
            return_value=Response(
                200, json={"root_token": "s.root", "keys": ["k1"], "keys_base64": ["azE="]}
            )
        )
        respx.get(f"{OPENBAO_URL}/sys/seal-status").mock(
            return_value=Response(200, json={"sealed": True, "t": 1, "n": 1})
        )
        unseal = respx.post(f"{OPENBAO_URL}/sys/unseal").mock(
            return_value=Response(200, json={"sealed": False, "t": 1, "n": 1})
        )
        respx.get(f"{OPENBAO_URL}/sys/mounts").mock(
            return_value=Response(200, json={"data": {"sys/": {}, "cubbyhole/": {}}})
        )
        mount = respx.post(f"{OPENBAO_URL}/sys/mounts/secret").mock(return_value=Response(204))
        secret = respx.post(f"{OPENBAO_URL}/secret/data/example/credentials").mock(
            return_value=Response(200, json={"data": {"version": 1}})
        )

        result = OpenBaoConfigurator(config, installer=installer, sleep=no_sleep).run()

        assert result.initialized_now
        assert result.unsealed_now
        assert result.kv_enabled_now
        assert result.example_secret_written
        assert result.env_change == "added"
        assert json.loads(init.calls.last.request.content) == {
            "secret_shares": 1,
            "secret_threshold": 1,
        }
        assert json.loads(unseal.calls.last.request.content) == {"key": "k1"}
        assert mount.calls.last.request.headers["X-Vault-Token"] == "s.root"
        assert secret.called
        saved = InitKeys.load(config.openbao_keys_file)
        assert saved.root_token.get_secret_value() == "s.root"
        assert "ITENTIAL_VAULT_TOKEN=" in config.env_file.read_text()
