"""
Processor - Constants.

Environment variable names and runtime defaults.
"""

# ============================================================
# CONNECTION OVERRIDES
# ============================================================

ENV_REDIS_URL = "PROCESSOR_REDIS_URL"
ENV_REDIS_HOST = "PROCESSOR_REDIS_HOST"
ENV_REDIS_PORT = "PROCESSOR_REDIS_PORT"
ENV_REDIS_PASSWORD = "PROCESSOR_REDIS_PASSWORD"
ENV_REDIS_USERNAME = "PROCESSOR_REDIS_USERNAME"
ENV_REDIS_DB = "PROCESSOR_REDIS_DB"
ENV_REDIS_LAZY_CONNECT = "PROCESSOR_REDIS_LAZY_CONNECT"
ENV_REDIS_CONNECT_TIMEOUT = "PROCESSOR_REDIS_CONNECT_TIMEOUT"

# ============================================================
# WORKER SELECTION (set by the dev wrapper, read at registration)
# ============================================================

ENV_WORKERS_ONLY = "PROCESSOR_WORKERS_ONLY"
ENV_WORKERS_EXCEPT = "PROCESSOR_WORKERS_EXCEPT"

# ============================================================
# RUNTIME
# ============================================================

ENV_WORKER_MODULES = "PROCESSOR_WORKER_MODULES"
ENV_LOG_LEVEL = "LOG_LEVEL"
ENV_LOG_FORMAT = "LOG_FORMAT"

DEFAULT_QUEUE_PREFIX = "processor"
DEFAULT_POLL_TIMEOUT_SECONDS = 1
DEFAULT_CLOSE_TIMEOUT_SECONDS = 30.0

EXIT_SUCCESS = 0
EXIT_STARTUP_FAILURE = 1
