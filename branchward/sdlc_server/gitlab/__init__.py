"""GitLab platform access: REST client, retries, branch primitives.

Managers depend on ``GitLabPlatform`` only; the lower modules are the
building blocks it composes.
"""
