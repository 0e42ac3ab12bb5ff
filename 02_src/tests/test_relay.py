"""Tests for MessageRelay."""

import pytest

from pairchat.models import ConversationStatus, RelayOutcome


class TestForward:
    """Tests for MessageRelay.forward()."""

    @pytest.mark.asyncio
    async def test_no_conversation_never_reaches_sink(self, relay, mock_sink):
        """Without an active conversation nothing is sent."""
        result = await relay.forward("alice", "hello?")

        assert result.outcome is RelayOutcome.NO_ACTIVE_CONVERSATION
        assert result.recipient_id is None
        mock_sink.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_pending_conversation_is_not_active(
        self, relay, mock_sink, conversations
    ):
        """A reservation that was never confirmed does not relay."""
        await conversations.reserve("alice", "bob")

        result = await relay.forward("alice", "too early")

        assert result.outcome is RelayOutcome.NO_ACTIVE_CONVERSATION
        mock_sink.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_delivers_to_partner_verbatim(self, relay, mock_sink, paired):
        """Content reaches the other member unchanged."""
        text = "  hi there!\nsecond line  "

        result = await relay.forward("alice", text)

        assert result.outcome is RelayOutcome.DELIVERED
        assert result.conversation_id == paired.id
        assert result.recipient_id == "bob"
        mock_sink.send.assert_awaited_once_with("bob", text)

    @pytest.mark.asyncio
    async def test_relays_in_both_directions(self, relay, mock_sink, paired):
        """Either member can send."""
        await relay.forward("bob", "hey")
        mock_sink.send.assert_awaited_once_with("alice", "hey")

    @pytest.mark.asyncio
    async def test_delivery_failure_keeps_conversation(
        self, relay, mock_sink, paired, conversations
    ):
        """A failed send is reported and the conversation stays active."""
        mock_sink.send.return_value = False

        result = await relay.forward("alice", "anyone?")

        assert result.outcome is RelayOutcome.DELIVERY_FAILED
        assert result.recipient_id == "bob"
        stored = await conversations.get(paired.id)
        assert stored.status is ConversationStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_no_relay_after_end(self, relay, mock_sink, paired, conversations):
        """Once ended, messages are no longer forwarded."""
        await conversations.terminate(paired.id, "alice")

        result = await relay.forward("bob", "still there?")

        assert result.outcome is RelayOutcome.NO_ACTIVE_CONVERSATION
        mock_sink.send.assert_not_called()
