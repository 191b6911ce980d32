"""
Keygate CLI - the ``kg`` operator command.

Usage:
    kg publish --item-key app://users/u1 --permission read --expires-at 2030-01-01T00:00:00Z --max-uses 10
    kg validate <api-key>
    kg revoke <verifier-or-id>
    kg list <item-key>
    kg stats [<verifier-or-id>]
    kg sweep
    kg health
    kg config
"""

__cli_name__ = "kg"
