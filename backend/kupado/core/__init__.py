"""
Core application modules.
Contains the store boundary, logging, metrics and error types.
"""
from .database import Store, get_store, initialize_store

__all__ = ["Store", "get_store", "initialize_store"]
