"""Numeric process exit codes used by the ``deskauth`` command line.

Each constant maps to a failure category and is referenced by the
corresponding :class:`~deskauth.exceptions.DeskauthError` subclass, so
shell wrappers can branch on ``$?`` without parsing stderr.

Example::

    $ deskauth token
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- no usable credential, run `deskauth login`
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or configuration."""

EXIT_AUTH_FAILURE = 3
"""Authentication failed or no valid credential is available."""

EXIT_CONNECTION_ERROR = 6
"""The token endpoint could not be reached."""

EXIT_STORAGE_ERROR = 8
"""The secure credential storage could not be read or written."""
