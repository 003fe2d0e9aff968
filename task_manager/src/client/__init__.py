"""
Client side of the Task Manager.

- api: TaskApiClient, one httpx call per intent, envelope unwrapped into typed results
- cache: TaskCache, optimistic in-memory mirror of the task list and stats
"""
