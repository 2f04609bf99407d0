"""
Core domain layer: configuration, storage backends, schemas and services.
"""
