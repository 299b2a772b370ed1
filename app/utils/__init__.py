"""
UTILITIES PACKAGE
=================

Helpers used by the services (no HTTP, no business logic):

  retry         - with_retry_async(fn): awaits fn(); on failure retries with exponential backoff (Groq).
  logging_utils - log_operation(name): logs each mutating store call and re-raises typed errors.
"""
