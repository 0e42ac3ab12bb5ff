"""Texts sent to participants by the service itself."""

MATCH_FOUND = (
    "You've been matched with a partner!\n\n"
    "Send messages here to chat. Use /stop to end the conversation."
)

PARTNER_LEFT = (
    "Your partner has ended the conversation.\n\n"
    "Use /search to find a new partner."
)

# Replies for the requesting participant, keyed by outcome value.
REPLIES = {
    "matched": MATCH_FOUND,
    "no_partner": (
        "No one is available right now. You stay in the queue, "
        "try /search again soon."
    ),
    "already_paired": (
        "You are already in a conversation. Use /stop to end it first."
    ),
    "ended": (
        "Conversation ended. You are available for new matches, "
        "use /search to find a new partner."
    ),
    "no_active_conversation": (
        "You are not in a conversation. Use /search to find a partner first."
    ),
    "delivered": "",
    "delivery_failed": (
        "Sorry, your message couldn't be delivered. Your partner might be "
        "unreachable, try again."
    ),
    "command_ignored": "",
    "offline": "You are offline. Use /start to come back.",
}


def reply_for(outcome: str) -> str:
    """Return the reply text shown to the requester for an outcome."""
    return REPLIES.get(outcome, "")
