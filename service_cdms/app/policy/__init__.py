"""
Policy package.

The engine is pure: it reads a Policy and a caller (organization, role)
and returns an allow/deny decision with a rationale for logs. Loading
policies from the ledger is the query layer's job.
"""
