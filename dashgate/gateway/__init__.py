"""Request-level guards: CSRF double-submit check and security headers."""
