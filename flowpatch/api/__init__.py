"""
HTTP API
Thin FastAPI transport over the workflow diff service
"""
