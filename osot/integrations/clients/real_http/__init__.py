"""
Real HTTP integration clients (Dataverse Web API, email API).

Must implement the same interfaces as the mock clients. Selection happens
in osot/api/dependencies.py only.
"""
