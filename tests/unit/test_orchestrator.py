"""
Unit tests for route generation cycles.

Providers are in-memory fakes; the inter-batch sleep is recorded instead of
waited on.
"""

import asyncio

import httpx
import pytest

from conftest import FakeDirections, FakePlaces, RecordingSleep
from transitsim.config import DEFAULT_PALETTE, SimulationSettings
from transitsim.metrics import metrics
from transitsim.models import NamedPoint
from transitsim.providers import OsrmRouteProvider
from transitsim.simulation.orchestrator import RouteOrchestrator


def _slot(route_id: str) -> int:
    return int(route_id.split("-")[1])


# ---------------------------------------------------------------------------
# §1 – Batching and rate limiting
# ---------------------------------------------------------------------------
class TestBatching:

    def test_ten_agents_in_two_batches(self, nyc_bounds, fast_config, rng, fake_places,
                                       fake_directions, recording_sleep):
        orchestrator = RouteOrchestrator(
            fake_places, fake_directions, config=fast_config, rng=rng, sleep=recording_sleep
        )

        assert asyncio.run(orchestrator.generate(nyc_bounds)) is True

        assert orchestrator.batches_issued == 2
        assert recording_sleep.delays == [pytest.approx(0.2)]
        assert len(fake_directions.calls) <= 10
        assert len(orchestrator.routes) == len(fake_directions.calls)
        assert metrics.get_counter("route_requests") == len(fake_directions.calls)

    def test_partial_last_batch(self, nyc_bounds, rng, fake_places, fake_directions, recording_sleep):
        config = SimulationSettings(agent_count=7, batch_size=5, batch_delay_ms=50.0)
        orchestrator = RouteOrchestrator(
            fake_places, fake_directions, config=config, rng=rng, sleep=recording_sleep
        )

        asyncio.run(orchestrator.generate(nyc_bounds))

        assert orchestrator.batches_issued == 2
        assert recording_sleep.delays == [pytest.approx(0.05)]
        assert len(fake_directions.calls) <= 7

    def test_single_batch_never_sleeps(self, nyc_bounds, rng, fake_places, fake_directions, recording_sleep):
        config = SimulationSettings(agent_count=5, batch_size=5)
        orchestrator = RouteOrchestrator(
            fake_places, fake_directions, config=config, rng=rng, sleep=recording_sleep
        )

        asyncio.run(orchestrator.generate(nyc_bounds))

        assert orchestrator.batches_issued == 1
        assert recording_sleep.delays == []

    def test_requests_within_a_batch_overlap(self, nyc_bounds, rng, fake_places, recording_sleep):
        """All requests of a batch are in flight before any of them completes."""
        config = SimulationSettings(agent_count=5, batch_size=5)

        async def run():
            gate = asyncio.Event()
            directions = FakeDirections(gate=gate)
            orchestrator = RouteOrchestrator(
                fake_places, directions, config=config, rng=rng, sleep=recording_sleep
            )
            task = asyncio.create_task(orchestrator.generate(nyc_bounds))
            for _ in range(20):
                await asyncio.sleep(0)
            in_flight = len(directions.calls)
            gate.set()
            await task
            return in_flight, orchestrator

        in_flight, orchestrator = asyncio.run(run())
        assert in_flight == len(orchestrator.routes)
        assert in_flight >= 4

    def test_zero_agents_produces_empty_set(self, nyc_bounds, rng, fake_places, fake_directions):
        config = SimulationSettings(agent_count=0)
        orchestrator = RouteOrchestrator(fake_places, fake_directions, config=config, rng=rng)

        assert asyncio.run(orchestrator.generate(nyc_bounds)) is True
        assert dict(orchestrator.routes) == {}
        assert fake_directions.calls == []


# ---------------------------------------------------------------------------
# §2 – Endpoint sampling
# ---------------------------------------------------------------------------
class TestSampling:

    def test_uniform_fallback_inside_bounds(self, nyc_bounds, fast_config, rng, fake_places,
                                            fake_directions, recording_sleep):
        orchestrator = RouteOrchestrator(
            fake_places, fake_directions, config=fast_config, rng=rng, sleep=recording_sleep
        )
        asyncio.run(orchestrator.generate(nyc_bounds))

        assert fake_places.calls == [nyc_bounds]
        for start, end in fake_directions.calls:
            assert start.name == "Location"
            assert end.name == "Location"
            assert nyc_bounds.contains(start)
            assert nyc_bounds.contains(end)

    def test_places_sampled_when_available(self, nyc_bounds, fast_config, rng, fake_directions,
                                           recording_sleep):
        places = [
            NamedPoint(lng=-74.05, lat=40.65, name="Red Hook"),
            NamedPoint(lng=-73.95, lat=40.75, name="Astoria"),
            NamedPoint(lng=-74.00, lat=40.70, name="Tribeca"),
        ]
        orchestrator = RouteOrchestrator(
            FakePlaces(places), fake_directions, config=fast_config, rng=rng, sleep=recording_sleep
        )
        asyncio.run(orchestrator.generate(nyc_bounds))

        for start, end in fake_directions.calls:
            assert start in places
            assert end in places
            assert start != end
        for route in orchestrator.routes.values():
            assert route.label == f"{route.start.name} → {route.end.name}"

    def test_places_error_falls_back_to_uniform(self, nyc_bounds, fast_config, rng, fake_directions,
                                                recording_sleep):
        places = FakePlaces(error=RuntimeError("overpass down"))
        orchestrator = RouteOrchestrator(
            places, fake_directions, config=fast_config, rng=rng, sleep=recording_sleep
        )
        asyncio.run(orchestrator.generate(nyc_bounds))

        assert len(fake_directions.calls) > 0
        assert all(start.name == "Location" for start, _ in fake_directions.calls)

    def test_places_lookup_is_timed(self, nyc_bounds, fast_config, rng, fake_places, fake_directions,
                                    recording_sleep):
        orchestrator = RouteOrchestrator(
            fake_places, fake_directions, config=fast_config, rng=rng, sleep=recording_sleep
        )
        asyncio.run(orchestrator.generate(nyc_bounds))
        asyncio.run(orchestrator.generate(nyc_bounds))

        assert metrics.get_timing("places_lookup").count == 2

    def test_near_duplicate_endpoints_issue_no_request(self, nyc_bounds, fast_config, rng,
                                                       fake_directions, recording_sleep):
        """With a single known place every pair collapses onto itself."""
        places = FakePlaces([NamedPoint(lng=-74.0, lat=40.7, name="Only Place")])
        orchestrator = RouteOrchestrator(
            places, fake_directions, config=fast_config, rng=rng, sleep=recording_sleep
        )
        asyncio.run(orchestrator.generate(nyc_bounds))

        assert fake_directions.calls == []
        assert dict(orchestrator.routes) == {}
        assert metrics.get_counter("candidates_skipped") == 10
        assert metrics.get_counter("route_requests") == 0

    def test_near_duplicate_threshold(self, fast_config):
        orchestrator = RouteOrchestrator(FakePlaces(), FakeDirections(), config=fast_config)
        a = NamedPoint(lng=10.0, lat=10.0)
        assert orchestrator.is_near_duplicate(a, NamedPoint(lng=10.004, lat=10.004))
        assert not orchestrator.is_near_duplicate(a, NamedPoint(lng=10.006, lat=10.0))
        assert not orchestrator.is_near_duplicate(a, NamedPoint(lng=10.0, lat=9.99))


# ---------------------------------------------------------------------------
# §3 – Route construction
# ---------------------------------------------------------------------------
class TestRouteConstruction:

    def test_colors_follow_slot_index(self, nyc_bounds, fast_config, rng, fake_places,
                                      fake_directions, recording_sleep):
        orchestrator = RouteOrchestrator(
            fake_places, fake_directions, config=fast_config, rng=rng, sleep=recording_sleep
        )
        asyncio.run(orchestrator.generate(nyc_bounds))

        assert orchestrator.routes
        for route_id, route in orchestrator.routes.items():
            assert route.id == route_id
            assert route.color == DEFAULT_PALETTE[_slot(route_id) % len(DEFAULT_PALETTE)]

    def test_palette_wraps(self, fast_config):
        orchestrator = RouteOrchestrator(FakePlaces(), FakeDirections(), config=fast_config)
        assert orchestrator.color_for(0) == DEFAULT_PALETTE[0]
        assert orchestrator.color_for(10) == DEFAULT_PALETTE[0]
        assert orchestrator.color_for(13) == DEFAULT_PALETTE[3]

    def test_route_ids_are_unique(self, nyc_bounds, fast_config, rng, fake_places,
                                  fake_directions, recording_sleep):
        orchestrator = RouteOrchestrator(
            fake_places, fake_directions, config=fast_config, rng=rng, sleep=recording_sleep
        )
        asyncio.run(orchestrator.generate(nyc_bounds))
        first = set(orchestrator.routes)

        asyncio.run(orchestrator.generate(nyc_bounds))
        second = set(orchestrator.routes)

        assert first.isdisjoint(second)
        assert all(route_id.startswith("bus-") for route_id in first | second)

    def test_route_polyline_comes_from_directions(self, nyc_bounds, fast_config, rng, fake_places,
                                                  fake_directions, recording_sleep):
        orchestrator = RouteOrchestrator(
            fake_places, fake_directions, config=fast_config, rng=rng, sleep=recording_sleep
        )
        asyncio.run(orchestrator.generate(nyc_bounds))

        for route in orchestrator.routes.values():
            assert len(route.polyline) == 3
            assert route.polyline[0].lng == route.start.lng
            assert route.polyline[-1].lat == route.end.lat


# ---------------------------------------------------------------------------
# §4 – Failure handling
# ---------------------------------------------------------------------------
class TestFailures:

    def test_failed_requests_are_dropped(self, nyc_bounds, fast_config, rng, fake_places,
                                         recording_sleep):
        directions = FakeDirections(fail_every=2)
        orchestrator = RouteOrchestrator(
            fake_places, directions, config=fast_config, rng=rng, sleep=recording_sleep
        )
        asyncio.run(orchestrator.generate(nyc_bounds))

        requested = len(directions.calls)
        assert len(orchestrator.routes) == requested - requested // 2
        assert metrics.get_counter("routes_built") == len(orchestrator.routes)

    def test_unroutable_pairs_do_not_stop_the_cycle(self, nyc_bounds, rng, fake_places, recording_sleep):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) <= 5:
                return httpx.Response(400, json={"code": "NoRoute", "message": "Impossible route"})
            return httpx.Response(200, json={
                "code": "Ok",
                "routes": [{"geometry": {"coordinates": [[-74.0, 40.7], [-73.95, 40.75]]}}],
            })

        directions = OsrmRouteProvider(
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            base_url="https://osrm.test",
        )
        config = SimulationSettings(agent_count=20, batch_size=5, batch_delay_ms=200.0)
        orchestrator = RouteOrchestrator(
            fake_places, directions, config=config, rng=rng, sleep=recording_sleep
        )
        asyncio.run(orchestrator.generate(nyc_bounds))

        assert len(calls) > 5
        assert len(calls) == metrics.get_counter("route_requests")
        assert len(orchestrator.routes) == len(calls) - 5
        assert orchestrator.batches_issued == 4

    def test_raising_directions_yield_empty_set(self, nyc_bounds, fast_config, rng, fake_places,
                                                recording_sleep):
        directions = FakeDirections(error=ConnectionError("osrm down"))
        orchestrator = RouteOrchestrator(
            fake_places, directions, config=fast_config, rng=rng, sleep=recording_sleep
        )

        assert asyncio.run(orchestrator.generate(nyc_bounds)) is True
        assert dict(orchestrator.routes) == {}
        assert not orchestrator.is_generating

    def test_short_polyline_is_skipped(self, nyc_bounds, fast_config, rng, fake_places,
                                       recording_sleep):
        class OnePointDirections(FakeDirections):
            async def route_between(self, start, end):
                self.calls.append((start, end))
                return [start]

        directions = OnePointDirections()
        orchestrator = RouteOrchestrator(
            fake_places, directions, config=fast_config, rng=rng, sleep=recording_sleep
        )
        asyncio.run(orchestrator.generate(nyc_bounds))

        assert dict(orchestrator.routes) == {}
        assert metrics.get_counter("candidates_skipped") == 10

    def test_cycle_error_keeps_previous_routes(self, nyc_bounds, fast_config, rng, fake_places,
                                               fake_directions, recording_sleep):
        orchestrator = RouteOrchestrator(
            fake_places, fake_directions, config=fast_config, rng=rng, sleep=recording_sleep
        )
        asyncio.run(orchestrator.generate(nyc_bounds))
        before = dict(orchestrator.routes)

        async def broken_sleep(delay):
            raise RuntimeError("timer failure")

        orchestrator._sleep = broken_sleep
        assert asyncio.run(orchestrator.generate(nyc_bounds)) is True

        assert dict(orchestrator.routes) == before
        assert not orchestrator.is_generating


# ---------------------------------------------------------------------------
# §5 – Route set replacement
# ---------------------------------------------------------------------------
class TestReplacement:

    def test_listeners_notified_once_per_cycle(self, nyc_bounds, fast_config, rng, fake_places,
                                               fake_directions, recording_sleep):
        orchestrator = RouteOrchestrator(
            fake_places, fake_directions, config=fast_config, rng=rng, sleep=recording_sleep
        )
        seen = []
        orchestrator.add_listener(lambda routes: seen.append(dict(routes)))

        asyncio.run(orchestrator.generate(nyc_bounds))

        assert len(seen) == 1
        assert seen[0] == dict(orchestrator.routes)
        assert metrics.get_gauge("active_routes") == len(orchestrator.routes)

    def test_route_set_unchanged_until_cycle_completes(self, nyc_bounds, fast_config, rng,
                                                       fake_places, recording_sleep):
        async def run():
            directions = FakeDirections()
            orchestrator = RouteOrchestrator(
                fake_places, directions, config=fast_config, rng=rng, sleep=recording_sleep
            )
            await orchestrator.generate(nyc_bounds)
            before = dict(orchestrator.routes)

            directions.gate = asyncio.Event()
            task = asyncio.create_task(orchestrator.generate(nyc_bounds))
            for _ in range(10):
                await asyncio.sleep(0)
            during = dict(orchestrator.routes)
            directions.gate.set()
            await task
            return before, during, dict(orchestrator.routes)

        before, during, after = asyncio.run(run())
        assert during == before
        assert set(after).isdisjoint(before)

    def test_failing_listener_does_not_block_others(self, nyc_bounds, fast_config, rng, fake_places,
                                                    fake_directions, recording_sleep):
        orchestrator = RouteOrchestrator(
            fake_places, fake_directions, config=fast_config, rng=rng, sleep=recording_sleep
        )
        seen = []

        def broken(routes):
            raise ValueError("listener bug")

        orchestrator.add_listener(broken)
        orchestrator.add_listener(lambda routes: seen.append(len(routes)))

        asyncio.run(orchestrator.generate(nyc_bounds))
        assert seen == [len(orchestrator.routes)]

    def test_routes_view_is_read_only(self, fast_config):
        orchestrator = RouteOrchestrator(FakePlaces(), FakeDirections(), config=fast_config)
        with pytest.raises(TypeError):
            orchestrator.routes["x"] = None
