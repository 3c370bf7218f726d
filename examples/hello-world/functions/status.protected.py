async def handler(context, event, callback):
    """Only reachable with a valid X-Twilio-Signature when validation is on."""
    response = Response()
    response.set_status_code(202)
    response.append_header("Content-Type", "application/json")
    response.set_body({"domain": context.DOMAIN_NAME, "received": event})
    callback(None, response)
