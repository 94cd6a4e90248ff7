"""KPISynapse Backend.

KPI scoring and automated trigger engine for field-executive learning
platforms: period scoring, rule-driven remedial actions, and scheduled
re-evaluation.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
