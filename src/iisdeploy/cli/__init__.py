"""Command-line interface for iisdeploy."""
