def handler(context, event, callback):
    """Listed by Runtime.get_functions() but never routed."""
    callback(None, {"private": True})
