"""Mission orchestration engine.

A mission is decomposed into tasks that form a dependency DAG. Agents poll for
ready work, report success or failure, and a task that keeps failing is handed
to an auditor instead of being retried forever. A squad lead agent plans each
mission; its JSON plan is ingested into agents, tasks and dependency edges.

Why no scheduler?
~~~~~~~~~~~~~~~~~
Every operation is a short read/modify/save sequence triggered by a caller
(CLI, worker poll, auditor). There is no background loop and no lock; the
record store is the only shared state, so the engine runs the same over the
in-memory store used by tests and the SQLite store used by the CLI.
"""
