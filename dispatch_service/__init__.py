"""Notification dispatch service.

Delivers notifications (email, SMS, push, in-app) through pluggable adapters
while a backend tracks each notification's lifecycle.
"""

__version__ = "0.1.0"
