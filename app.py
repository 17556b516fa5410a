#!/usr/bin/env python3
"""
Queue Processor - Main Application Entry Point.

============================================================
SINGLE ENTRYPOINT
============================================================
Runs the worker set named by PROCESSOR_WORKER_MODULES.

- Compatible with process managers (PM2, systemd, a dev watcher)
- Exits 0 after a graceful shutdown on SIGINT/SIGTERM/SIGQUIT
- Exits 1 when initialization fails

============================================================
USAGE
============================================================
Direct execution:
    PROCESSOR_WORKER_MODULES=myapp.workers.email,myapp.workers.reports python app.py

Connection overrides:
    PROCESSOR_REDIS_URL=redis://cache:6379/0 python app.py

Worker selection (normally set by the dev wrapper):
    PROCESSOR_WORKERS_ONLY=email python app.py

============================================================
"""

import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.absolute()
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from dotenv import load_dotenv

from processor.config import ProcessorSettings
from processor.entry import create_entry, is_entry_point


BUILD_DEFAULTS = {
    "host": "localhost",
    "port": 6379,
}


def build_entry():
    """Entry for the worker modules configured in the environment."""
    load_dotenv(override=False)
    settings = ProcessorSettings.from_env()
    return create_entry(settings.worker_modules, BUILD_DEFAULTS)


async def create_workers_app():
    """Application factory for hosts that import this module."""
    return await build_entry().create_workers_app()


def main() -> int:
    """Main entry point."""
    code = build_entry().main(is_entry_point(__file__))
    return code if code is not None else 0


if __name__ == "__main__":
    sys.exit(main())
