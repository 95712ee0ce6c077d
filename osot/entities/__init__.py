"""Dataverse table definitions and option-set enums."""
