"""Shared paths and field sets for storage migration."""

from __future__ import annotations

CLAUDE_DIR = ".claude"
AGENT_SETTINGS_PATH = CLAUDE_DIR + "/settings.json"
PLUGIN_SETTINGS_PATH = CLAUDE_DIR + "/claudian-settings.json"
COMMANDS_DIR = CLAUDE_DIR + "/commands"
SESSIONS_DIR = CLAUDE_DIR + "/sessions"
MCP_CONFIG_PATH = CLAUDE_DIR + "/mcp.json"

AGENT_SETTINGS_SCHEMA = "https://json.schemastore.org/claude-code-settings.json"

# Keys that belong to this plugin and must never remain in settings.json.
# Keep in sync with PluginSettings when adding fields.
TOOL_PRIVATE_FIELDS = frozenset(
    {
        "userName",
        "enableBlocklist",
        "blockedCommands",
        "permissionMode",
        "lastNonPlanPermissionMode",
        "model",
        "thinkingBudget",
        "enableAutoTitleGeneration",
        "titleGenerationModel",
        "excludedTags",
        "mediaFolder",
        "systemPrompt",
        "allowedExportPaths",
        "persistentExternalContextPaths",
        "environmentVariables",
        "envSnippets",
        "keyboardNavigation",
        "claudeCliPath",
        "claudeCliPaths",
        "loadUserClaudeSettings",
        # Deprecated: dropped during migration, never carried over.
        "allowedContextPaths",
        "showToolUse",
        "toolCallExpandedByDefault",
    }
)

DEPRECATED_FIELDS = frozenset(
    {
        "allowedContextPaths",
        "showToolUse",
        "toolCallExpandedByDefault",
    }
)

LEGACY_ACTIVE_CONVERSATION_KEY = "activeConversationId"
LEGACY_CLI_PATHS_KEY = "claudeCliPaths"
TAB_MANAGER_STATE_KEY = "tabManagerState"

BLOB_STATE_KEYS = ("lastEnvHash", "lastClaudeModel", "lastCustomModel")
BLOB_CONTENT_KEYS = ("slashCommands", "conversations")
BLOB_CONSUMED_KEYS = BLOB_STATE_KEYS + BLOB_CONTENT_KEYS + ("migrationVersion",)
