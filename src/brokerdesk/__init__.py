"""Brokerdesk back-office announcement service."""
