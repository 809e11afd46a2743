"""Event reducer and emitter tests."""

import pytest

from lendflow.contracts import (
    FlowSession,
    FlowStatus,
    PartyPatch,
    PartyRole,
    StatePatch,
    StepRecord,
    StepStatus,
    TransactionResult,
)
from lendflow.errors import SessionStateError
from lendflow.events import (
    ProgressEmitter,
    StateUpdateEvent,
    StepUpdateEvent,
    apply_event,
    parse_event,
)
from lendflow.transports import InMemoryTransport


def _record(status, **extra):
    return StepRecord(
        id="create-vault",
        title="Broker Creates USD Vault",
        description="Broker creates a Single Asset Vault",
        status=status,
        **extra,
    )


def test_step_updates_upsert_by_id():
    session = FlowSession.new("loan-creation", "wss://test")
    running = apply_event(session, StepUpdateEvent(data=_record(StepStatus.RUNNING)))
    done = apply_event(running, StepUpdateEvent(data=_record(StepStatus.SUCCESS)))

    assert len(done.steps) == 1
    assert done.step("create-vault").status == StepStatus.SUCCESS
    assert running.step("create-vault").status == StepStatus.RUNNING
    assert session.steps == ()


def test_step_result_round_trips_through_json():
    record = _record(
        StepStatus.SUCCESS,
        result=TransactionResult(
            hash="ABC", transaction_type="VaultCreate", result_code="tesSUCCESS"
        ),
    )
    event = parse_event(StepUpdateEvent(data=record).model_dump_json())

    assert isinstance(event, StepUpdateEvent)
    assert event.data.result.kind == "transaction"
    assert event.data.result.result_code == "tesSUCCESS"


def test_once_only_ids_cannot_be_reassigned():
    session = FlowSession.new("loan-creation", "wss://test")
    session = apply_event(session, StateUpdateEvent(data=StatePatch(vault_id="AAA")))

    same = apply_event(session, StateUpdateEvent(data=StatePatch(vault_id="AAA")))
    assert same.vault_id == "AAA"
    with pytest.raises(SessionStateError):
        apply_event(session, StateUpdateEvent(data=StatePatch(vault_id="BBB")))


def test_party_update_merges_only_given_fields():
    session = FlowSession.new("loan-creation", "wss://test")
    session = session.merge_party(
        PartyPatch(role=PartyRole.LENDER, address="rLender", balance="100 XRP")
    )
    session = session.merge_party(PartyPatch(role=PartyRole.LENDER, usd_balance="10,000 USD"))

    lender = session.party(PartyRole.LENDER)
    assert lender.address == "rLender"
    assert lender.balance == "100 XRP"
    assert lender.usd_balance == "10,000 USD"
    assert lender.label == "Lender"
    assert [p.role for p in session.parties] == list(PartyRole)


@pytest.mark.asyncio
async def test_emitter_fans_out_to_transports_and_listeners():
    transport = InMemoryTransport()
    seen = []

    async def async_listener(event, session):
        seen.append(("async", event.type, session.status))

    emitter = ProgressEmitter(
        FlowSession.new("loan-creation", "wss://test"),
        transports=[transport],
        listeners=[async_listener],
    )
    unsubscribe = emitter.subscribe(lambda event, session: seen.append(("sync", event.type)))

    await emitter.state(status=FlowStatus.RUNNING)
    unsubscribe()
    await emitter.complete("report line 1\nreport line 2")

    assert emitter.session.status == FlowStatus.COMPLETED
    assert emitter.session.report == ("report line 1", "report line 2")
    assert emitter.session.completed_at is not None
    assert [event.type for event in transport.events] == ["state_update", "flow_complete"]
    assert seen == [
        ("async", "state_update", FlowStatus.RUNNING),
        ("sync", "state_update"),
        ("async", "flow_complete", FlowStatus.COMPLETED),
    ]


@pytest.mark.asyncio
async def test_flow_error_keeps_partial_report():
    emitter = ProgressEmitter(FlowSession.new("loan-creation", "wss://test"))
    await emitter.fail("Faucet unavailable", "partial")

    assert emitter.session.status == FlowStatus.ERROR
    assert emitter.session.error_message == "Faucet unavailable"
    assert emitter.session.report == ("partial",)
    assert emitter.session.is_terminal
