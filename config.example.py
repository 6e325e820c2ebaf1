# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets. Use:
- .env (local, gitignored)
- config_local.py (local safe overrides, gitignored)

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "STEEB_APP_NAME": "App display name (default: steeb).",
    "STEEB_LOG_LEVEL": "Logging level (default: INFO).",
    # Connectors
    "STEEB_CONSOLE_ENABLED": "Enable the operator console (true/false, default: true).",
    "STEEB_PUSH_ENABLED": "Run the daily push scheduler (true/false, default: false).",
    # Paths (gitignored)
    "STEEB_DATA_DIR": "Local data directory (default: .local/steeb).",
    "STEEB_TASKS_PATH": "Task JSON file (default: <data_dir>/tasks.json).",
    "STEEB_ENGAGEMENT_DB_PATH": "Engagement SQLite path (default: <data_dir>/engagement.sqlite3).",
    "STEEB_PUSH_DB_PATH": "Push registrations SQLite path (default: <data_dir>/push.sqlite3).",
    # Push delivery
    "STEEB_PUSH_RELAY_URL": "HTTP push relay endpoint (empty => dry-run delivery).",
    "STEEB_PUSH_RELAY_TOKEN": "Optional bearer token sent to the relay.",
    "STEEB_PUSH_REQUEST_TIMEOUT_SECONDS": "Relay request timeout (default: 10).",
    "STEEB_PUSH_CLICK_URL": "data.url of daily notifications (default: /).",
    # Adaptive scheduler
    "STEEB_PUSH_TIMEZONE": "Fallback timezone (default: America/Argentina/Buenos_Aires).",
    "STEEB_PUSH_DAILY_MINUTE": "Minute past the target hour to send at (default: 0).",
    "STEEB_PUSH_TICK_SECONDS": "Scheduler polling interval (default: 60).",
    "STEEB_PUSH_PROBE_HOURS": "Exploration hours, comma/space separated (default: 9,11,13,16,19,21).",
    "STEEB_PUSH_MIN_LEARNING_EVENTS": "Engagement events needed before the learned hour is used (default: 3).",
    # Tuning
    "STEEB_ENGAGEMENT_DECAY_THRESHOLD": "Halve hourly counters once a user's total exceeds this (default: 1000).",
    "STEEB_TASK_TREE_MAX_DEPTH": "Default nesting depth of task trees (default: 3).",
}
