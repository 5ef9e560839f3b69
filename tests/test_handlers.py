"""Tests for per-state handlers: transitions, events, idempotency and race loss."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from swap_engine.core.errors import ErrorKind, ExecutionError, fatal_error, retriable_error
from swap_engine.domain.order_state import OrderStatus
from swap_engine.domain.types import OrderPayload, RoutingDecision, SwapResult
from swap_engine.fsm.handlers import OrderStateHandlers
from swap_engine.routing.router import VenueRouter

PAYLOAD = OrderPayload(source_asset="SOL", dest_asset="USDC", amount=1.0, slippage=0.01)


@pytest.fixture
def handlers(store, notifier, stub_venues, metrics):
    return OrderStateHandlers(store, notifier, VenueRouter(stub_venues, ["meteora", "raydium"]), metrics)


async def _order_in(store, status, order_id="o1", routed_to=None, tx=None):
    """Create an order and walk it to status through the store, with an attempt."""
    await store.create_order(order_id, PAYLOAD)
    attempt = await store.create_execution_attempt(order_id, 1)
    path = [OrderStatus.PENDING, OrderStatus.ROUTING, OrderStatus.BUILDING, OrderStatus.SUBMITTED]
    for src, dst in zip(path, path[1:]):
        if src == status:
            break
        assert await store.conditional_transition(order_id, src, dst)
    if routed_to:
        decision = RoutingDecision(venue=routed_to, prices={routed_to: 100.0}, fees={routed_to: 0.003}, reason="test")
        await store.update_execution_routing(attempt.id, decision)
    if tx:
        await store.update_execution_success(attempt.id, tx, 100.4)
    return await store.get_order(order_id)


class TestPending:
    @pytest.mark.asyncio
    async def test_creates_attempt_and_publishes_routing(self, handlers, store, recorder):
        await store.create_order("o1", PAYLOAD)
        order = await store.get_order("o1")
        assert await handlers.handle_pending(order) == OrderStatus.ROUTING
        assert (await store.get_order("o1")).status == OrderStatus.ROUTING
        assert await store.count_execution_attempts("o1") == 1
        assert recorder.statuses() == ["routing"]
        assert recorder.events[0].data == {}

    @pytest.mark.asyncio
    async def test_redelivery_reuses_active_attempt(self, handlers, store, recorder):
        await store.create_order("o1", PAYLOAD)
        order = await store.get_order("o1")
        await store.create_execution_attempt("o1", 1)  # previous delivery crashed before transitioning
        assert await handlers.handle_pending(order) == OrderStatus.ROUTING
        assert await store.count_execution_attempts("o1") == 1

    @pytest.mark.asyncio
    async def test_race_loss_is_silent(self, handlers, store, recorder, metrics):
        await store.create_order("o1", PAYLOAD)
        stale = await store.get_order("o1")
        assert await handlers.handle_pending(stale) == OrderStatus.ROUTING
        assert await handlers.handle_pending(stale) is None
        assert recorder.statuses() == ["routing"]
        assert await store.count_execution_attempts("o1") == 1
        assert metrics.race_losses == 1

    @pytest.mark.asyncio
    async def test_stale_redelivery_after_confirm_adds_no_attempt(self, handlers, store, recorder):
        await store.create_order("o1", PAYLOAD)
        stale = await store.get_order("o1")
        assert await handlers.handle_pending(stale) == OrderStatus.ROUTING
        assert await handlers.handle_routing(await store.get_order("o1")) == OrderStatus.BUILDING
        assert await handlers.handle_building(await store.get_order("o1")) == OrderStatus.CONFIRMED

        assert await handlers.handle_pending(stale) is None
        assert await store.count_execution_attempts("o1") == 1
        attempt = await store.get_latest_execution_attempt("o1")
        assert attempt.tx_hash == "mock_raydium_tx"
        assert (await store.get_order("o1")).status == OrderStatus.CONFIRMED
        assert recorder.statuses() == ["routing", "building", "submitted", "confirmed"]


class TestTransitionTable:
    @pytest.mark.asyncio
    async def test_non_adjacent_move_refused(self, handlers, store, metrics):
        await store.create_order("o1", PAYLOAD)
        assert not await handlers._transition("o1", OrderStatus.PENDING, OrderStatus.BUILDING)
        assert not await handlers._transition("o1", OrderStatus.PENDING, OrderStatus.CONFIRMED)
        assert (await store.get_order("o1")).status == OrderStatus.PENDING
        assert metrics.transition_count("building") == 0
        assert metrics.race_losses == 0

    @pytest.mark.asyncio
    async def test_refused_move_never_reaches_store(self, notifier, stub_venues, metrics):
        store = AsyncMock()
        handlers = OrderStateHandlers(store, notifier, VenueRouter(stub_venues), metrics)
        assert not await handlers._transition("o1", OrderStatus.SUBMITTED, OrderStatus.ROUTING)
        assert not await handlers._transition("o1", OrderStatus.CONFIRMED, OrderStatus.FAILED)
        store.conditional_transition.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_forward_steps_counted_per_target(self, handlers, store, metrics):
        order = await _order_in(store, OrderStatus.BUILDING, routed_to="raydium")
        assert await handlers.handle_building(order) == OrderStatus.CONFIRMED
        assert metrics.transition_count("submitted") == 1
        assert metrics.transition_count("confirmed") == 1
        assert metrics.transition_count("failed") == 0


class TestRouting:
    @pytest.mark.asyncio
    async def test_records_decision_and_publishes_building(self, handlers, store, recorder, stub_venues):
        order = await _order_in(store, OrderStatus.ROUTING)
        assert await handlers.handle_routing(order) == OrderStatus.BUILDING
        attempt = await store.get_latest_execution_attempt("o1")
        assert attempt.chosen_venue == "raydium"
        assert attempt.routing_decision.prices == {"raydium": 100.0, "meteora": 99.5}
        assert attempt.routing_decision.fees == {"raydium": 0.003, "meteora": 0.002}
        assert recorder.statuses() == ["building"]
        assert recorder.events[0].data["routing"]["venue"] == "raydium"
        assert stub_venues["raydium"].quote_calls == 1
        assert stub_venues["meteora"].quote_calls == 1

    @pytest.mark.asyncio
    async def test_reuses_recorded_decision(self, handlers, store, recorder, stub_venues):
        order = await _order_in(store, OrderStatus.ROUTING, routed_to="meteora")
        assert await handlers.handle_routing(order) == OrderStatus.BUILDING
        assert stub_venues["raydium"].quote_calls == 0
        assert recorder.events[0].data["routing"]["venue"] == "meteora"

    @pytest.mark.asyncio
    async def test_quote_failure_persists_nothing(self, handlers, store, recorder, stub_venues):
        stub_venues["raydium"].quote_error = retriable_error("Network timeout on raydium")
        order = await _order_in(store, OrderStatus.ROUTING)
        with pytest.raises(ExecutionError):
            await handlers.handle_routing(order)
        attempt = await store.get_latest_execution_attempt("o1")
        assert attempt.routing_decision is None
        assert (await store.get_order("o1")).status == OrderStatus.ROUTING
        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_missing_attempt_is_fatal(self, handlers, store):
        await store.create_order("o1", PAYLOAD)
        await store.conditional_transition("o1", OrderStatus.PENDING, OrderStatus.ROUTING)
        with pytest.raises(ExecutionError) as exc:
            await handlers.handle_routing(await store.get_order("o1"))
        assert exc.value.kind == ErrorKind.FATAL


class TestBuilding:
    @pytest.mark.asyncio
    async def test_swap_confirms_with_two_transitions(self, handlers, store, recorder, stub_venues):
        order = await _order_in(store, OrderStatus.BUILDING, routed_to="raydium")
        assert await handlers.handle_building(order) == OrderStatus.CONFIRMED
        assert recorder.statuses() == ["submitted", "confirmed"]
        assert recorder.events[1].data == {"tx_hash": "mock_raydium_tx", "execution_price": 100.0}
        attempt = await store.get_latest_execution_attempt("o1")
        assert attempt.tx_hash == "mock_raydium_tx"
        assert stub_venues["raydium"].swap_calls == 1
        assert stub_venues["meteora"].swap_calls == 0

    @pytest.mark.asyncio
    async def test_slippage_fails_order(self, handlers, store, recorder, stub_venues):
        stub_venues["raydium"].error = fatal_error("Slippage exceeded on raydium")
        order = await _order_in(store, OrderStatus.BUILDING, routed_to="raydium")
        assert await handlers.handle_building(order) == OrderStatus.FAILED
        assert recorder.statuses() == ["failed"]
        assert recorder.events[0].data == {"error": "Slippage exceeded on raydium"}
        attempt = await store.get_latest_execution_attempt("o1")
        assert attempt.failure_reason == "Slippage exceeded on raydium"
        assert (await store.get_order("o1")).status == OrderStatus.FAILED

    @pytest.mark.asyncio
    async def test_transient_failure_propagates(self, handlers, store, recorder, stub_venues):
        stub_venues["raydium"].error = retriable_error("Network timeout on raydium")
        order = await _order_in(store, OrderStatus.BUILDING, routed_to="raydium")
        with pytest.raises(ExecutionError) as exc:
            await handlers.handle_building(order)
        assert exc.value.kind == ErrorKind.RETRIABLE
        assert (await store.get_order("o1")).status == OrderStatus.BUILDING
        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_missing_routing_is_fatal(self, handlers, store):
        order = await _order_in(store, OrderStatus.BUILDING)
        with pytest.raises(ExecutionError) as exc:
            await handlers.handle_building(order)
        assert exc.value.is_fatal

    @pytest.mark.asyncio
    async def test_recorded_tx_skips_venue(self, handlers, store, recorder, stub_venues):
        order = await _order_in(store, OrderStatus.BUILDING, routed_to="raydium", tx="tx_prev")
        assert await handlers.handle_building(order) == OrderStatus.CONFIRMED
        assert stub_venues["raydium"].swap_calls == 0
        assert recorder.events[-1].data == {"tx_hash": "tx_prev", "execution_price": 100.4}

    @pytest.mark.asyncio
    async def test_race_loss_after_swap_publishes_nothing(self, handlers, store, recorder):
        order = await _order_in(store, OrderStatus.BUILDING, routed_to="raydium")
        # Another worker advanced the order while this one was swapping.
        await store.conditional_transition("o1", OrderStatus.BUILDING, OrderStatus.SUBMITTED)
        assert await handlers.handle_building(order) is None
        assert recorder.events == []


class TestSubmittedRecovery:
    @pytest.mark.asyncio
    async def test_confirms_from_recorded_tx(self, handlers, store, recorder, stub_venues):
        order = await _order_in(store, OrderStatus.SUBMITTED, routed_to="raydium", tx="tx_prev")
        assert await handlers.handle_submitted(order) == OrderStatus.CONFIRMED
        assert recorder.statuses() == ["confirmed"]
        assert recorder.events[0].data["tx_hash"] == "tx_prev"
        assert stub_venues["raydium"].swap_calls == 0

    @pytest.mark.asyncio
    async def test_no_tx_is_noop(self, handlers, store, recorder):
        order = await _order_in(store, OrderStatus.SUBMITTED, routed_to="raydium")
        assert await handlers.handle_submitted(order) is None
        assert (await store.get_order("o1")).status == OrderStatus.SUBMITTED
        assert recorder.events == []


class TestFailOrder:
    @pytest.mark.asyncio
    async def test_fail_from_observed_status(self, handlers, store, recorder):
        order = await _order_in(store, OrderStatus.ROUTING)
        assert await handlers.fail_order(order, "boom") == OrderStatus.FAILED
        assert recorder.events[0].data == {"error": "boom"}

    @pytest.mark.asyncio
    async def test_terminal_order_untouched(self, handlers, store, recorder):
        order = await _order_in(store, OrderStatus.SUBMITTED, routed_to="raydium", tx="tx")
        await store.conditional_transition("o1", OrderStatus.SUBMITTED, OrderStatus.CONFIRMED)
        confirmed = await store.get_order("o1")
        assert await handlers.fail_order(confirmed, "late") is None
        assert (await store.get_order("o1")).status == OrderStatus.CONFIRMED
        assert (await store.get_latest_execution_attempt("o1")).failure_reason is None
        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_fail_by_id_follows_current_status(self, handlers, store, recorder):
        await _order_in(store, OrderStatus.BUILDING, routed_to="raydium")
        assert await handlers.fail_order_by_id("o1", "Retry limit exceeded: x") == OrderStatus.FAILED
        assert (await store.get_order("o1")).status == OrderStatus.FAILED

    @pytest.mark.asyncio
    async def test_fail_by_id_missing_order(self, handlers):
        assert await handlers.fail_order_by_id("missing", "x") is None

    @pytest.mark.asyncio
    async def test_store_errors_propagate(self, notifier, stub_venues, metrics):
        store = AsyncMock()
        store.get_latest_execution_attempt = AsyncMock(side_effect=ConnectionError("db down"))
        handlers = OrderStateHandlers(store, notifier, VenueRouter(stub_venues), metrics)
        order = MagicMock()
        order.id = "o1"
        with pytest.raises(ConnectionError):
            await handlers.handle_pending(order)
