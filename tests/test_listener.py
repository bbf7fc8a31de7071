import asyncio

from claims_coordinator.dedupe import EventDeduper
from claims_coordinator.discovery import ClaimDiscovery
from claims_coordinator.event_stream import SettlementEventStream
from claims_coordinator.invalidation import CacheTopic, InvalidationBus
from claims_coordinator.listener import SettlementEventListener
from claims_coordinator.state import SubmissionStateStore
from claims_coordinator.types import ClaimIdentity, SettlementEvent, SettlementKind

from fakes import PLAYER, WINNER, DummyNotifier, FakeGateway, season_one


def _listener(account: str = PLAYER):
    store = SubmissionStateStore()
    bus = InvalidationBus()
    signals = []
    for topic in CacheTopic:
        bus.subscribe(topic, signals.append)
    notifier = DummyNotifier()
    listener = SettlementEventListener(account, store, bus, notifier, EventDeduper(3600))
    return listener, store, signals, notifier


def _consolation_event(account: str = PLAYER, tx_hash: str = "0xabc") -> SettlementEvent:
    return SettlementEvent(
        kind=SettlementKind.CONSOLATION,
        account=account,
        season_id=1,
        amount=1000,
        tx_hash=tx_hash,
        log_index=0,
    )


def test_matching_event_removes_idle_claim_from_next_discovery() -> None:
    listener, store, signals, notifier = _listener()
    gateway = FakeGateway(seasons={1: season_one()}, participants={(1, PLAYER)})
    discovery = ClaimDiscovery(gateway, store)

    async def scenario():
        before = await discovery.discover(PLAYER, [1])
        applied = await listener.handle(_consolation_event(account=PLAYER.upper().replace("0X", "0x")))
        after = await discovery.discover(PLAYER, [1])
        return before, applied, after

    before, applied, after = asyncio.run(scenario())

    assert [r.identity for r in before] == [ClaimIdentity.raffle_consolation(1)]
    assert applied is True
    assert after == []
    assert [s.topic for s in signals] == [CacheTopic.CLAIMS, CacheTopic.BALANCE]
    assert len(notifier.messages) == 1
    assert "Consolation prize claimed" in notifier.messages[0]


def test_event_for_other_account_is_ignored() -> None:
    listener, store, signals, notifier = _listener()

    applied = asyncio.run(listener.handle(_consolation_event(account=WINNER)))

    assert applied is False
    assert store.snapshot() == {}
    assert signals == []
    assert notifier.messages == []


def test_redelivered_event_is_applied_once() -> None:
    listener, _, signals, notifier = _listener()

    async def scenario():
        await listener.handle(_consolation_event())
        await listener.handle(_consolation_event())

    asyncio.run(scenario())

    assert listener.events_applied == 1
    assert len(signals) == 2
    assert len(notifier.messages) == 1


def test_grand_event_settles_grand_identity_via_stream_callbacks() -> None:
    listener, store, _, _ = _listener(account=WINNER)
    stream = SettlementEventStream("wss://relay.example/events", WINNER)
    listener.attach(stream)
    event = SettlementEvent(SettlementKind.GRAND, WINNER.lower(), 4, 1000, "0xdef", 2)

    asyncio.run(stream.dispatch(event))

    assert store.is_confirmed(ClaimIdentity.raffle_grand(4))
    assert not store.is_confirmed(ClaimIdentity.raffle_consolation(4))


def test_event_after_local_confirmation_is_not_announced_twice() -> None:
    listener, store, signals, notifier = _listener()
    identity = ClaimIdentity.raffle_consolation(1)
    store.track(identity)
    store.begin_submit(identity)
    store.confirm(identity, "0xabc")

    applied = asyncio.run(listener.handle(_consolation_event()))

    assert applied is False
    assert store.tx_hash(identity) == "0xabc"
    assert signals == []
    assert notifier.messages == []
