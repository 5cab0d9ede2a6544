"""Mail service building blocks: MIME headers and multipart bodies, IMAP body structures, template helpers, self-signed certificates and runtime configuration."""

__version__ = "0.0.19"

__all__ = ["cert", "conf", "header", "multipart", "structure", "templatefuncs"]