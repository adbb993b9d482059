"""Repository host access.

Key Components:
    - HostTransport: Abstract authenticated JSON transport (get/post)
    - AzureDevOpsTransport: Azure DevOps REST transport (API root, api-version, PAT auth)
    - AzureDevOpsProvider: Git queries (repositories, refs, commits, pull requests)
      parsed into domain models

Providers raise on failure. Fault tolerance is applied one layer up, in
``hu_reconciler.engine.evidence``.
"""
