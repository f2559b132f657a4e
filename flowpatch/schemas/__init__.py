"""
Schemas
Graph model, edit operations and API request/response models
"""
