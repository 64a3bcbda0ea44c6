"""Data models for provisioning and deploy pipelines."""
