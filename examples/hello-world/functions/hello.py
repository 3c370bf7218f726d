def handler(context, event, callback):
    """Greets whoever is named in the query or body."""
    name = event.get("name", "world")
    callback(None, f"{context.GREETING}, {name}!")
