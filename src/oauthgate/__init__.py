"""oauthgate: third-party sign-in redirects with split-token CSRF protection."""

__version__ = "0.1.0"
