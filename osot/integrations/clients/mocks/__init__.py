"""
Mock integration clients.

In-memory Dataverse and a file-writing email client. Used when the real
credentials are not configured, or when INTEGRATIONS_MODE=mock.

Mock clients must follow the SAME interface as the real HTTP clients.
"""
