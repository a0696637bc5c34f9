"""
Entities package.

Defines the five ledger entity kinds (Policy, Organization, User, Case,
Record) and the repository that reads and writes them through a ledger
transaction.
"""
