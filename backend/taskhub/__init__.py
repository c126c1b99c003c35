"""TaskHub - multi-tenant task and project management backend."""

__version__ = "0.1.0"
