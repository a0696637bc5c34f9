"""
Case-management ledger service package.

Stores cases, evidentiary records, organizations, users and access
policies on an ordered key-value ledger and enforces organization-
and role-based access when they are read. It provides:

- app.main: HTTP surface and health.
- app.contract: the ledger operations, one transaction per invocation.
- app.query: access-filtered reads and range-scan listings.
- app.policy: the policy engine.
- app.entities: entity models and the repository.
- app.ledger: ledger store contract and backends.

Guidelines:
- No secondary indices: every listing is a full prefix scan.
- The store provides atomicity; the core does no locking or caching.
- The caller role is trusted as reported.
"""
