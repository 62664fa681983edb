"""
Component tests for the storefront API

Component tests drive the FastAPI routes through the services and stores
against an in-memory MongoDB (mongomock), without mocking internal layers.
"""
