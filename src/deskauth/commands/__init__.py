"""Built-in ``deskauth`` sub-commands."""
