# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Use:
- .env (local, gitignored)
- config_local.py (local safe overrides, gitignored)

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "STASH_APP_NAME": "App display name (default: stash).",
    "STASH_LOG_LEVEL": "Console logging level (default: INFO).",
    # Connectors
    "STASH_CONSOLE_ENABLED": "Run the console REPL (true/false, default: true).",
    # Escalation / notifications
    "STASH_ESCALATION_ENABLED": "Automatic escalation toward L1 (true/false, default: true).",
    "STASH_NOTIFICATIONS_ENABLED": "Escalation notices (true/false, default: true).",
    "STASH_ESCALATION_INITIAL_DELAY": "Seconds before the first escalation pass (default: 60).",
    "STASH_ESCALATION_INTERVAL": "Seconds between escalation passes (default: 300).",
    # Input
    "STASH_DEFAULT_TIER": "Tier new tasks go to (l1, l2, l3, mem; default: l1).",
    # Paths (gitignored)
    "STASH_DATA_DIR": "Local data directory (default: .local/stash).",
    "STASH_TASKS_DB_PATH": "TaskStore SQLite path (default: <data_dir>/stash.sqlite3).",
    "STASH_LOG_DIR": "Log directory (default: <data_dir>).",
    "STASH_EXPORT_PATH": "Default /export target (default: <data_dir>/stash-export.json).",
}
