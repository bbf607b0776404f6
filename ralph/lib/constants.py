"""Shared constants for ralph."""

import re

# Workspace name validation
WORKSPACE_NAME_PATTERN = re.compile(r'^[a-zA-Z0-9._-]+$')
BASE_WORKSPACE = "base"

# Environment variables
ENV_WORKSPACE = "RALPH_WORKSPACE"
ENV_SHELL_INIT = "RALPH_SHELL_INIT"

# Layout under <repo>/
RALPH_DIR = ".ralph"
CONFIG_FILE = "ralph.yaml"
STATE_DIR = "state"
WORKSPACES_DIR = "workspaces"
ARCHIVE_DIR = "archive"
LOGS_DIR = "logs"
PRD_FILE = "prd.json"
PROGRESS_FILE = "progress.txt"
REGISTRY_FILE = "workspaces.json"
WORKSPACE_META_FILE = "workspace.json"
TREE_DIR = "tree"
PID_FILE = "run.pid"
STATUS_FILE = "run.status.json"
RUN_LOCK_FILE = "run.lock"
DAEMON_LOG_FILE = "daemon.log"
COMPLETION_SENTINEL = "COMPLETE"

# Loop
DEFAULT_MAX_ITERATIONS = 20
ITERATION_DELAY_SECONDS = 2.0
USAGE_LIMIT_FALLBACK_WAIT_SECONDS = 30.0

# Daemon lifecycle
DAEMON_START_TIMEOUT_SECONDS = 5.0
DAEMON_START_POLL_SECONDS = 0.1
STOP_GRACEFUL_TIMEOUT_SECONDS = 30.0
STOP_KILL_TIMEOUT_SECONDS = 5.0
STOP_POLL_SECONDS = 0.2

# Event streaming
TAIL_POLL_SECONDS = 0.2
READER_POLL_SECONDS = 0.1
LIVENESS_POLL_SECONDS = 0.5
LIVENESS_GRACE_SECONDS = 0.3

# Quality gate
DEFAULT_CHECK_TAIL_LINES = 20

# Rebase
REBASE_MAX_TURNS = 30
REBASE_MAX_ROUNDS = 10

# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130
