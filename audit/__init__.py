"""
audit -- Append-only audit trail of administrative actions.

Layer rule: no imports from api/ or services/. Services depend on audit,
never the reverse.
"""
