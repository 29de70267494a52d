"""
TA Recruitment System
Backend for recruiting Teaching Assistants in a university department.

Architecture:
- MongoDB: users, recruitment series, modules, TA applications, hour ledgers
- FastAPI: REST API consumed by the single-page frontend
- SMTP: notification emails sent in the background
"""

__version__ = "1.0.0"
