"""
Processor Package - Worker Runtime Supervision.

============================================================
PACKAGE OVERVIEW
============================================================
Supervises a dynamic set of long-running job-queue workers in
one process: resolves the shared queue connection, loads worker
definitions in order, starts every worker with per-worker
failure isolation, and tears the set down exactly once.

============================================================
CORE PRINCIPLES
============================================================
1. Connection config is installed before any worker is loaded
2. Error listeners are attached to all workers before any starts
3. One worker's failure never reaches its siblings
4. stop() may be called any number of times; it runs once

============================================================
ARCHITECTURE
============================================================

    +-----------------------------------------------------+
    |                 ShutdownCoordinator                 |
    |-----------------------------------------------------|
    |  Supervisor        |  start sequence, isolation     |
    |  ModuleLoader      |  sequential worker loading     |
    |  WorkerRegistry    |  connection + ordered workers  |
    |  resolve_connection_config | defaults + env         |
    +-----------------------------------------------------+

============================================================
QUICK START
============================================================
A worker-definition module::

    async def send_email(job):
        ...

    def register(registry):
        registry.define_worker("email", send_email, concurrency=5)

Running it::

    PROCESSOR_WORKER_MODULES=myapp.workers.email python app.py

Programmatic usage::

    from processor import WorkerRegistry, Supervisor, module_loaders

    registry = WorkerRegistry()
    supervisor = Supervisor(
        registry,
        loaders=module_loaders(["myapp.workers.email"]),
        defaults={"host": "localhost", "port": 6379},
    )
    app = await supervisor.start()
    ...
    await app.stop()

============================================================
EXPORTS
============================================================
"""

# ============================================================
# Configuration
# ============================================================
from processor.config import (
    ConnectionConfig,
    ProcessorSettings,
    resolve_connection_config,
)

# ============================================================
# Workers and queues
# ============================================================
from processor.queue import Job, Queue
from processor.worker import QueueWorker, Worker

# ============================================================
# Registry and loading
# ============================================================
from processor.models import AppHandle, WorkerFilter
from processor.registry import WorkerRegistry
from processor.loader import ModuleLoader, module_loader, module_loaders

# ============================================================
# Lifecycle
# ============================================================
from processor.supervisor import Supervisor, create_workers_app
from processor.shutdown import ShutdownCoordinator
from processor.entry import Entry, create_entry, is_entry_point
from processor.codegen import render_entry_module, write_entry_module

# ============================================================
# Package metadata
# ============================================================
__version__ = "1.0.0"

__all__ = [
    # Configuration
    "ConnectionConfig",
    "ProcessorSettings",
    "resolve_connection_config",

    # Workers and queues
    "Job",
    "Queue",
    "Worker",
    "QueueWorker",

    # Registry and loading
    "AppHandle",
    "WorkerFilter",
    "WorkerRegistry",
    "ModuleLoader",
    "module_loader",
    "module_loaders",

    # Lifecycle
    "Supervisor",
    "create_workers_app",
    "ShutdownCoordinator",
    "Entry",
    "create_entry",
    "is_entry_point",
    "render_entry_module",
    "write_entry_module",
]
