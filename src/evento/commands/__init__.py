"""Built-in CLI sub-commands for evento.

* :mod:`~evento.commands.auth` -- sign in, status, token and logout.
* :mod:`~evento.commands.user` -- the signed-in user.
* :mod:`~evento.commands.events` -- event CRUD and RSVP.
* :mod:`~evento.commands.api` -- raw authenticated requests.

Multi-command groups export a :class:`typer.Typer` sub-application; ``api``
is a plain function registered directly on the root app.  Shared option
resolution and error reporting live in :mod:`~evento.commands.common`.
"""
