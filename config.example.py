# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets. Use .env (local, gitignored).

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "TASKPAD_APP_NAME": "App display name (default: taskpad).",
    "TASKPAD_LOG_LEVEL": "Console logging level (default: WARNING; the log file always gets DEBUG).",
    "TASKPAD_CONSOLE_COLOR": "Strike through done tasks with ANSI codes (true/false, default: true).",
    # Remote
    "TASKPAD_OFFLINE": "Force the in-memory gateway even if Supabase is configured (true/false).",
    "TASKPAD_OFFLINE_LATENCY_SECONDS": "Artificial delay per offline gateway call, to watch optimistic updates (default: 0).",
    "TASKPAD_SUPABASE_URL": "Supabase project URL (SUPABASE_URL is accepted too).",
    "TASKPAD_SUPABASE_ANON_KEY": "Supabase anon/public key (SUPABASE_ANON_KEY is accepted too).",
    "TASKPAD_TASKS_TABLE": "PostgREST table holding tasks (default: todos).",
    "TASKPAD_HTTP_TIMEOUT_SECONDS": "Per-request timeout (default: 10).",
    "TASKPAD_SESSION_WATCH_SECONDS": (
        "How often to check the session file for sign-ins/outs from other processes (default: 2, 0 disables)."
    ),
    # Paths (gitignored)
    "TASKPAD_DATA_DIR": "Local data directory for logs and the session (default: .local/taskpad).",
    "TASKPAD_SESSION_PATH": "Auth session JSON path (default: <data_dir>/session.json).",
}
