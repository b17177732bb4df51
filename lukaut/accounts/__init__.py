"""User accounts, email tokens and usage quotas."""

from lukaut.accounts.service import (
    BusinessProfileParams,
    ProfileParams,
    RegisterParams,
    authenticate,
    change_password,
    get_user,
    get_user_by_email,
    hash_password,
    register,
    update_business_profile,
    update_profile,
    verify_password,
)

__all__ = [
    "BusinessProfileParams",
    "ProfileParams",
    "RegisterParams",
    "authenticate",
    "change_password",
    "get_user",
    "get_user_by_email",
    "hash_password",
    "register",
    "update_business_profile",
    "update_profile",
    "verify_password",
]
