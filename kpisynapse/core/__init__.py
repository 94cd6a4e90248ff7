# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Core package for KPISynapse.

This package contains the core business logic and shared utilities:
- config: Application configuration and settings
- kpi: Scoring tables, rating tiers and the trigger rule engine
"""
