"""
Core business logic components.

This package contains:
- Host configuration facility and the module settings store
- Convert rule storage, PCRE translation and the remote client
- The message transformer (rule synchronization and application)
- Error reporting, authentication and metrics collection
"""
