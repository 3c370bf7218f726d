def handler(context, event, callback):
    """Answers an incoming call."""
    twiml = Twilio.VoiceResponse()
    twiml.say(f"Thanks for calling {context.DOMAIN_NAME}")
    callback(None, twiml)
