import asyncio

import httpx

from claims_coordinator.errors import ClaimErrorKind, GatewayRevert
from claims_coordinator.gateway import HttpLedgerGateway
from claims_coordinator.invalidation import CacheTopic, InvalidationBus
from claims_coordinator.state import SubmissionStateStore, SubmissionStatus
from claims_coordinator.submission import ClaimSubmitter
from claims_coordinator.types import ClaimIdentity, Side

from fakes import DummyNotifier, FakeGateway

CONSOLATION = ClaimIdentity.raffle_consolation(1)
PAYOUT = ClaimIdentity.market_payout(2, "17", Side.NO)


def _submitter(gateway: FakeGateway, **kwargs):
    store = SubmissionStateStore()
    store.track(CONSOLATION)
    store.track(PAYOUT)
    bus = InvalidationBus()
    notifier = DummyNotifier()
    signals = []
    for topic in CacheTopic:
        bus.subscribe(topic, signals.append)
    submitter = ClaimSubmitter(gateway, store, bus, notifier, explorer_tx_base="https://scan.example/tx", **kwargs)
    return submitter, store, signals, notifier


def test_rapid_double_submit_writes_once() -> None:
    gateway = FakeGateway()
    submitter, store, _, _ = _submitter(gateway)

    async def scenario():
        gateway.submit_gate = asyncio.Event()
        first = asyncio.create_task(submitter.submit(CONSOLATION))
        await asyncio.sleep(0)
        assert store.is_pending(CONSOLATION)
        second = await submitter.submit(CONSOLATION)
        gateway.submit_gate.set()
        return await first, second

    first, second = asyncio.run(scenario())

    assert len(gateway.submissions) == 1
    assert first.ok and first.tx_hash == "0xfeed"
    assert second.error is not None
    assert second.error.kind is ClaimErrorKind.ALREADY_SUBMITTING


def test_success_confirms_before_invalidating() -> None:
    gateway = FakeGateway()
    submitter, store, signals, notifier = _submitter(gateway)
    status_at_signal = []
    submitter.bus.subscribe(CacheTopic.CLAIMS, lambda s: status_at_signal.append(store.status(CONSOLATION)))

    result = asyncio.run(submitter.submit(CONSOLATION))

    assert result.ok
    assert store.status(CONSOLATION) is SubmissionStatus.CONFIRMED
    assert status_at_signal == [SubmissionStatus.CONFIRMED]
    assert [s.topic for s in signals] == [CacheTopic.CLAIMS, CacheTopic.BALANCE]
    assert len(notifier.messages) == 1
    assert "https://scan.example/tx/0xfeed" in notifier.messages[0]


def test_submit_passes_domain_params() -> None:
    gateway = FakeGateway()
    submitter, _, _, _ = _submitter(gateway)

    asyncio.run(submitter.submit(PAYOUT))

    _, params = gateway.submissions[0]
    assert params == {"type": "market-payout", "seasonId": 2, "marketId": "17", "prediction": False}


def test_structured_already_claimed_reverts_to_idle_and_requests_refresh() -> None:
    gateway = FakeGateway()
    gateway.submit_error = GatewayRevert("execution reverted", code="AlreadyClaimed")
    submitter, store, signals, notifier = _submitter(gateway)

    result = asyncio.run(submitter.submit(CONSOLATION))

    assert result.error.kind is ClaimErrorKind.ALREADY_CLAIMED
    assert store.status(CONSOLATION) is SubmissionStatus.IDLE
    assert [(s.topic, s.urgent) for s in signals] == [(CacheTopic.CLAIMS, True)]
    assert "already been claimed" in notifier.messages[0]


def test_legacy_revert_text_is_classified() -> None:
    gateway = FakeGateway()
    gateway.submit_error = GatewayRevert("sender doesn't have insufficient funds for gas * price + value")
    submitter, store, _, _ = _submitter(gateway)

    result = asyncio.run(submitter.submit(CONSOLATION))

    assert result.error.kind is ClaimErrorKind.INSUFFICIENT_GAS_FUNDS
    assert store.status(CONSOLATION) is SubmissionStatus.IDLE


def test_failed_claim_can_be_retried() -> None:
    gateway = FakeGateway()
    gateway.submit_error = RuntimeError("boom")
    submitter, store, _, _ = _submitter(gateway)

    async def scenario():
        first = await submitter.submit(CONSOLATION)
        gateway.submit_error = None
        second = await submitter.submit(CONSOLATION)
        return first, second

    first, second = asyncio.run(scenario())

    assert first.error.kind is ClaimErrorKind.UNKNOWN
    assert second.ok
    assert len(gateway.submissions) == 2
    assert store.is_confirmed(CONSOLATION)


def test_timeout_reverts_to_idle_silently_after_grace() -> None:
    gateway = FakeGateway()
    submitter, store, signals, notifier = _submitter(gateway, timeout=0.01, grace_period=0.02)

    async def scenario():
        gateway.submit_gate = asyncio.Event()
        return await submitter.submit(CONSOLATION)

    result = asyncio.run(scenario())

    assert result.error.kind is ClaimErrorKind.TIMEOUT
    assert store.status(CONSOLATION) is SubmissionStatus.IDLE
    assert notifier.messages == []
    assert [s.topic for s in signals] == [CacheTopic.CLAIMS]


def test_acknowledgment_within_grace_period_confirms() -> None:
    gateway = FakeGateway()
    gateway.submit_delay = 0.05
    submitter, store, _, _ = _submitter(gateway, timeout=0.01, grace_period=1.0)

    result = asyncio.run(submitter.submit(CONSOLATION))

    assert result.ok
    assert store.is_confirmed(CONSOLATION)
    assert len(gateway.submissions) == 1


def test_undiscovered_claim_is_not_submitted() -> None:
    gateway = FakeGateway()
    submitter, store, signals, notifier = _submitter(gateway)
    unknown = ClaimIdentity.raffle_grand(9)

    result = asyncio.run(submitter.submit(unknown))

    assert result.error.kind is ClaimErrorKind.NOT_ELIGIBLE
    assert gateway.submissions == []
    assert store.status(unknown) is None
    assert signals == []
    assert notifier.messages == []


def test_relay_read_timeout_on_write_is_a_silent_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("relay did not answer", request=request)

    gateway = HttpLedgerGateway("https://relay.example", transport=httpx.MockTransport(handler))
    submitter, store, signals, notifier = _submitter(gateway)

    async def scenario():
        try:
            return await submitter.submit(CONSOLATION)
        finally:
            await gateway.close()

    result = asyncio.run(scenario())

    assert result.error.kind is ClaimErrorKind.TIMEOUT
    assert store.status(CONSOLATION) is SubmissionStatus.IDLE
    assert notifier.messages == []
    assert [(s.topic, s.urgent) for s in signals] == [(CacheTopic.CLAIMS, False)]
