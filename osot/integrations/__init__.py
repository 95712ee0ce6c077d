"""
Integrations layer.

Everything that talks to an external system lives here:
- Dataverse Web API (entity records for every OSOT table)
- Transactional email

Key rule:
- Controllers and the registration orchestrator never build HTTP requests
  themselves; they call a client implementing a contract from
  `osot.integrations.contracts`.

Switching implementations:
- Mock vs real clients are selected in ONE place (osot/api/dependencies.py).
"""

from .contracts.dataverse import AppContext, DataverseClient, DataverseCredentials, ODataFilter, ODataQuery
from .contracts.email import EmailClient, EmailMessage

__all__ = [
    "AppContext", "DataverseClient", "DataverseCredentials", "ODataFilter", "ODataQuery",
    "EmailClient", "EmailMessage",
]
