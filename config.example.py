# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Use:
- .env (local, gitignored)
- config_local.py (local safe overrides, gitignored)

This file exists to make the repo self-documenting even without opening .env.
"""

ENV_VARS = {
    # App / logging
    "TASKHUB_APP_NAME": "App display name (default: taskhub).",
    "TASKHUB_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    # Connectors
    "TASKHUB_CONSOLE_ENABLED": "Enable the console REPL (true/false, default: true).",
    "TASKHUB_RELAY_ENABLED": "Enable the background notification relay (true/false, default: true).",
    # Notification relay
    "TASKHUB_RELAY_INTERVAL_SECONDS": "Seconds between relay ticks (default: 5).",
    "TASKHUB_RELAY_BATCH_LIMIT": "Max notifications pushed per tick (default: 32).",
    # Task core
    "TASKHUB_MAX_WRITE_ATTEMPTS": "Compare-and-swap attempts per task write (default: 3).",
    "TASKHUB_REJECT_DEPENDENCY_CYCLES": "Refuse dependencies that close a cycle (default: false).",
    # Console session
    "TASKHUB_DEFAULT_USER_ID": "User the console starts logged in as (default: none, use /login).",
    # Paths (gitignored)
    "TASKHUB_DATA_DIR": "Local data directory (default: .local/taskhub).",
    "TASKHUB_TASKS_DB_PATH": "TaskStore SQLite path (default: <data_dir>/tasks.sqlite3).",
    "TASKHUB_NOTIFICATIONS_DB_PATH": (
        "NotificationStore SQLite path (default: <data_dir>/notifications.sqlite3)."
    ),
}
