# crm_dashboard/__init__.py
"""
CRM Dashboard

Shared infrastructure (configuration, database engine) plus the
cross_sell_performance engine package.
"""

__version__ = '1.0.0'
