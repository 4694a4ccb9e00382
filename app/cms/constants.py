"""
Central constants for the CMS application.
"""
from __future__ import annotations

import enum


class Role(enum.IntEnum):
    ADMIN = 1
    EDITOR = 2
    USER = 3


class ProductFeature(enum.IntEnum):
    MANAGE_USERS = 1
    MANAGE_SETTINGS = 2
    ADD_EDIT_CONTENT = 3


# Role -> features it grants. Roles missing here grant nothing.
FEATURES_BY_ROLE: dict[int, frozenset[ProductFeature]] = {
    Role.ADMIN: frozenset({ProductFeature.MANAGE_USERS, ProductFeature.MANAGE_SETTINGS}),
    Role.EDITOR: frozenset({ProductFeature.ADD_EDIT_CONTENT}),
    Role.USER: frozenset(),
}

# Key of the integer user id claim in the signed session cookie
SESSION_USER_ID_KEY = "user_id"

USERS_PER_PAGE = 10
PAGES_PER_PAGE = 10

# Largest value an Integer primary key column holds on every supported backend
MAX_ROW_ID = 2**31 - 1
