# src/brokerdesk/services/__init__.py
"""Business logic services for announcement distribution and read tracking."""
