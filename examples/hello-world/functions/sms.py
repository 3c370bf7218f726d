from twilio.twiml.messaging_response import MessagingResponse


def handler(context, event, callback):
    """Replies to an incoming message with the text of a private asset."""
    notice = Runtime.get_assets()["/message.txt"].open().strip()
    reply = MessagingResponse()
    reply.message(f"You said: {event.get('Body', '')}. {notice}")
    callback(None, reply)
