"""Configuration system for hu-reconciler.

This package provides type-safe configuration management using Pydantic,
covering the Azure DevOps connection, ticket matching, analysis limits,
branch preferences and HTTP behavior.

Key Components:
    - ReconcilerSettings: Main configuration container with YAML loading support
    - AzureDevOpsConfig: Organization, project, API version and token
    - TicketConfig: Ticket-key pattern and matching toggles
    - AnalysisConfig: Strict mode and query limits
    - SelectionConfig: Default repository and branch preferences
    - HttpConfig: Timeouts and concurrency bounds

Example:
    >>> from hu_reconciler.config.settings import ReconcilerSettings
    >>> settings = ReconcilerSettings.from_yaml("hu_reconciler.yaml")
    >>> settings.tickets.pattern
    'JURP01-[A-Z0-9]+'
"""
