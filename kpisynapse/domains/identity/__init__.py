# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Identity domain: user lookup and recipient resolution."""

from kpisynapse.domains.identity.directory import (
    ROLE_DEPARTMENTS,
    DatabaseIdentityDirectory,
    IdentityDirectory,
    Recipient,
    UserIdentity,
    dedupe_recipients,
    standing_for,
)

__all__ = [
    "ROLE_DEPARTMENTS",
    "DatabaseIdentityDirectory",
    "IdentityDirectory",
    "Recipient",
    "UserIdentity",
    "dedupe_recipients",
    "standing_for",
]
