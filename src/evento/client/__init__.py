"""HTTP client module for evento.

:class:`ApiClient` wraps :mod:`httpx` with path validation, bearer-token
injection through the session refresher, bounded retry with linear jittered
backoff, and classification of every failure into an
:class:`~evento.exceptions.EventoError`.

Example::

    from evento.client import ApiClient

    with ApiClient(config, command="user me") as client:
        envelope = client.get("/v1/user")
"""

from evento.client.api_client import ApiClient

__all__ = ["ApiClient"]
