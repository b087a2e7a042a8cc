"""
Permission management feature module.

Implements role-based access control: roles carrying permissions, direct user
grants, a super admin role that bypasses every check, and an audit trail of
administrative changes.
"""
