"""Check crate sources against a policy and load and validate the policy configuration."""

__version__ = "0.1.0"