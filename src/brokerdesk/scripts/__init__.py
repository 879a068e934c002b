"""Operational scripts for Brokerdesk."""
