"""
Dashgate - Passwordless Authentication Service

Email OTP login, invitation-gated registration and the client-side session
state for the chart dashboard.
"""

__version__ = "0.1.0"
