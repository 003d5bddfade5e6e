"""
Alumni Portal
Backend for an institutional alumni/student engagement platform.

Architecture:
- MongoDB: users, session requests, sessions, attendance, notifications
- Session engine: request workflow, eligibility, status derivation
- Notification fan-out and email are best-effort side channels
"""

__version__ = "1.0.0"
