"""
Tests for the simulated network.

Every test runs on a ``VirtualScheduler`` with a seeded RNG, so timings are
exact and nothing waits on the wall clock.
"""

import random
from datetime import timedelta

import pytest
from phantom.models import OWN_ORIGIN, ChannelState, SessionState
from phantom.scheduling import VirtualScheduler
from phantom.session import NotConnectedError, NotJoinedError
from phantom.simulation import (
    DEMO_CHANNEL,
    MOCK_CHANNELS,
    MOCK_HISTORY,
    RANDOM_MESSAGES,
    REPLIES,
    SPAM_EXAMPLES,
    SPAMMER,
    Simulated,
)


class TestConnect:
    """Test simulated connection and registration."""

    async def test_registers_after_delay(self, simulated, scheduler, config, record):
        """Test registration happens after the connect delay."""
        rec = record(simulated)
        await simulated.connect(config)
        assert simulated.state == SessionState.CONNECTING

        scheduler.advance(0.5)
        assert rec["connect"] == []
        scheduler.advance(0.5)
        assert simulated.is_connected
        assert rec["connect"][0].nick == "tester"

    async def test_auto_join(self, scheduler, config, record):
        """Test the demo channel is joined after registration."""
        session = Simulated(scheduler=scheduler, rng=random.Random(1))
        rec = record(session)
        await session.connect(config)
        scheduler.advance(2.0)

        assert session.get_channels() == [DEMO_CHANNEL]
        assert [event.channel for event in rec["join"]] == [DEMO_CHANNEL]
        assert rec["userList"][0].users[-1] == "tester"

    async def test_disconnect_before_registration(self, simulated, scheduler, config, record):
        """Test disconnecting mid-connect cancels registration."""
        rec = record(simulated)
        await simulated.connect(config)
        simulated.disconnect()
        scheduler.advance(5)
        assert simulated.state == SessionState.DISCONNECTED
        assert rec["connect"] == []
        assert scheduler.pending == 0


class TestJoin:
    """Test joining canned and unknown channels."""

    async def test_demo_channel(self, connected_simulated, scheduler, record):
        """Test the demo channel gets its topic and roster."""
        rec = record(connected_simulated)
        connected_simulated.join_channel(DEMO_CHANNEL)
        assert connected_simulated.get_channel(DEMO_CHANNEL).state == ChannelState.JOINING

        scheduler.advance(0.5)
        channel = connected_simulated.get_channel(DEMO_CHANNEL)
        assert channel.is_joined
        assert channel.topic == MOCK_CHANNELS[DEMO_CHANNEL]["topic"]
        assert connected_simulated.get_users(DEMO_CHANNEL) == sorted(
            MOCK_CHANNELS[DEMO_CHANNEL]["users"] + ["tester"]
        )
        assert len(rec["join"]) == 1
        assert len(rec["userList"]) == 1

    async def test_history_seeded_without_events(self, connected_simulated, scheduler, record):
        """Test canned history is logged without message events."""
        rec = record(connected_simulated)
        connected_simulated.join_channel("#dev-chat")
        scheduler.advance(0.5)

        history = connected_simulated.get_messages("#dev-chat")
        assert [m.text for m in history] == [text for _, text, _ in MOCK_HISTORY["#dev-chat"]]
        assert history[0].time == scheduler.now() - timedelta(seconds=7200)
        assert rec["message"] == []

    async def test_unknown_channel(self, connected_simulated, scheduler):
        """Test an unknown channel is empty and quiet."""
        connected_simulated.join_channel("#test")
        scheduler.advance(0.5)
        channel = connected_simulated.get_channel("#test")
        assert channel.is_joined
        assert channel.topic == "Welcome to #test"
        assert connected_simulated.get_users("#test") == ["tester"]
        assert connected_simulated.get_messages("#test") == []
        assert scheduler.pending == 0

    async def test_rejoin_does_not_duplicate_history(self, connected_simulated, scheduler):
        """Test a rejoin does not seed history again."""
        connected_simulated.join_channel("#random")
        scheduler.advance(0.5)
        connected_simulated.part_channel("#random")
        connected_simulated.join_channel("#random")
        scheduler.advance(0.5)
        assert len(connected_simulated.get_messages("#random")) == len(MOCK_HISTORY["#random"])

    async def test_join_requires_connection(self, simulated):
        """Test joining while disconnected raises."""
        with pytest.raises(NotConnectedError):
            simulated.join_channel("#test")


class TestTraffic:
    """Test replies and ambient traffic."""

    async def test_send_then_reply(self, connected_simulated, scheduler, record):
        """Test a sent message draws a canned reply after a delay."""
        connected_simulated.join_channel("#test")
        scheduler.advance(0.5)
        rec = record(connected_simulated)

        sent = connected_simulated.send("#test", "hello")
        log = connected_simulated.get_messages("#test")
        assert log == [sent]
        assert sent.origin == OWN_ORIGIN
        assert sent.time == scheduler.now()

        scheduler.advance(1.9)
        assert len(connected_simulated.get_messages("#test")) == 1
        scheduler.advance(3.2)
        reply = connected_simulated.get_messages("#test")[-1]
        assert (reply.sender, reply.text) in REPLIES
        assert rec["message"] == [sent, reply]

    async def test_ambient_messages(self, connected_simulated, scheduler):
        """Test joined channels get periodic canned chatter."""
        connected_simulated.join_channel("#random")
        scheduler.advance(0.5)
        seeded = len(MOCK_HISTORY["#random"])

        scheduler.advance(14.9)
        assert len(connected_simulated.get_messages("#random")) == seeded
        scheduler.advance(45.1)

        ambient = connected_simulated.get_messages("#random")[seeded:]
        assert len(ambient) >= 2
        for msg in ambient:
            assert (msg.sender, msg.text) in RANDOM_MESSAGES["#random"]

    async def test_part_cancels_activity(self, connected_simulated, scheduler, record):
        """Test parting cancels pending replies and chatter."""
        connected_simulated.join_channel("#random")
        scheduler.advance(0.5)
        connected_simulated.send("#random", "bye")
        rec = record(connected_simulated)

        connected_simulated.part_channel("#random")
        assert scheduler.pending == 0
        assert len(rec["part"]) == 1

        scheduler.advance(120)
        assert rec["message"] == []

    async def test_part_during_join(self, connected_simulated, scheduler, record):
        """Test parting before the join completes cancels it."""
        rec = record(connected_simulated)
        connected_simulated.join_channel("#random")
        connected_simulated.part_channel("#random")
        scheduler.advance(5)
        assert connected_simulated.get_channels() == []
        assert rec["join"] == []

    async def test_channel_case_is_ignored(self, connected_simulated, scheduler):
        """Test a canned channel joined in another case gets its data and can be parted."""
        connected_simulated.join_channel("#Random")
        scheduler.advance(0.5)
        assert connected_simulated.get_channels() == ["#Random"]
        assert len(connected_simulated.get_messages("#random")) == len(MOCK_HISTORY["#random"])
        assert scheduler.pending == 1

        connected_simulated.part_channel("#RANDOM")
        assert connected_simulated.get_channels() == []
        assert scheduler.pending == 0

    async def test_disconnect_stops_everything(self, connected_simulated, scheduler):
        """Test disconnect cancels all timers and keeps the logs."""
        connected_simulated.join_channel(DEMO_CHANNEL)
        scheduler.advance(0.5)
        connected_simulated.disconnect()
        assert scheduler.pending == 0
        assert connected_simulated.get_channels() == []
        assert len(connected_simulated.get_messages(DEMO_CHANNEL)) == len(MOCK_HISTORY[DEMO_CHANNEL])

    async def test_seeded_runs_are_reproducible(self, scheduler, config):
        """Test two runs with the same seed are identical."""
        async def run():
            clock = VirtualScheduler(start=scheduler.now())
            session = Simulated(scheduler=clock, rng=random.Random(42), auto_join=None)
            await session.connect(config)
            clock.advance(1)
            session.join_channel(DEMO_CHANNEL)
            clock.advance(0.5)
            session.send(DEMO_CHANNEL, "hi")
            clock.advance(90)
            return [(m.sender, m.text, m.time) for m in session.get_messages(DEMO_CHANNEL, None)]

        assert await run() == await run()


class TestInjectSpam:
    """Test injecting inbound spam."""

    async def test_inbound_spam(self, connected_simulated, scheduler, record):
        """Test an injected spam line arrives as an inbound message."""
        connected_simulated.join_channel("#test")
        scheduler.advance(0.5)
        rec = record(connected_simulated)

        msg = connected_simulated.inject_spam("#test")
        assert msg.sender == SPAMMER
        assert msg.text in SPAM_EXAMPLES
        assert rec["message"] == [msg]

    async def test_requires_joined_channel(self, connected_simulated):
        """Test injecting into an unjoined channel raises."""
        with pytest.raises(NotJoinedError):
            connected_simulated.inject_spam("#test")

    def test_requires_connection(self, simulated):
        """Test injecting while disconnected raises."""
        with pytest.raises(NotConnectedError):
            simulated.inject_spam("#test")
