# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "TASK_SYNC_APP_NAME": "App display name (default: task-sync).",
    "TASK_SYNC_LOG_LEVEL": "Console logging level (default: INFO).",
    "TASK_SYNC_LOG_TO_FILE": "Also write full DEBUG logs to <data_dir>/task_sync.log (default: true).",
    # Paths (gitignored)
    "TASK_SYNC_DATA_DIR": "Local data directory (default: .local/task_sync).",
    "TASK_SYNC_DB_PATH": "Task snapshot JSON path (default: <data_dir>/db.json).",
}
