"""
Todo Service package.

Pure status/priority rules live in `todo_service.rules`, the storage-backed
service in `todo_service.service` and the FastAPI app in `todo_service.main`.
"""

__version__ = "0.1.0"
