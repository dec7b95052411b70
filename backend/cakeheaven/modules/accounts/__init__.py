"""
Accounts Module - Customers, authentication and profiles.
"""

from cakeheaven.modules.accounts.service import AccountService, address_to_dict, user_to_dict

__all__ = [
    "AccountService",
    "address_to_dict",
    "user_to_dict",
]
