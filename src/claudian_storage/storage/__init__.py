"""Vault storage: settings files, per-entity stores and format migrations."""

from claudian_storage.storage.agent_settings import AgentSettings, AgentSettingsStore
from claudian_storage.storage.commands import CommandDefinition, CommandStore
from claudian_storage.storage.errors import (
    SettingsParseError,
    StorageConfigError,
    StorageError,
    VerificationError,
)
from claudian_storage.storage.file_adapter import FileAdapter
from claudian_storage.storage.legacy_state import LegacyStateStore, TabManagerState
from claudian_storage.storage.mcp import McpRegistryStore, McpServerEntry
from claudian_storage.storage.migration import CombinedSettings, MigrationCoordinator, MigrationSummary
from claudian_storage.storage.plugin_settings import PluginSettings, PluginSettingsStore
from claudian_storage.storage.sessions import ConversationMeta, ConversationTranscript, SessionStore

__all__ = [
    "AgentSettings",
    "AgentSettingsStore",
    "CombinedSettings",
    "CommandDefinition",
    "CommandStore",
    "ConversationMeta",
    "ConversationTranscript",
    "FileAdapter",
    "LegacyStateStore",
    "McpRegistryStore",
    "McpServerEntry",
    "MigrationCoordinator",
    "MigrationSummary",
    "PluginSettings",
    "PluginSettingsStore",
    "SessionStore",
    "SettingsParseError",
    "StorageConfigError",
    "StorageError",
    "TabManagerState",
    "VerificationError",
]
