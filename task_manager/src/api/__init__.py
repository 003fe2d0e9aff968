"""
Task Manager API package.

Layers, leaves first:
- repositories / db: TaskStore contract with in-memory and SQLite backends
- services: TaskService business rules and domain errors
- routers: FastAPI endpoints wrapping results in the response envelope
- main: application factory (`create_app`) and the default `app` instance
"""
