# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Unit tests for FixtureManager reference counting and lifecycle."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from perfbench.application.fixture_manager import FixtureManager
from perfbench.domain.errors import DuplicateNameError, FixtureStartError, NotFoundError
from tests.conftest import FakeResource

pytestmark = pytest.mark.unit


class TestRegistration:
    def test_duplicate_name_rejected(self, fixture_manager: FixtureManager) -> None:
        with pytest.raises(DuplicateNameError):
            fixture_manager.register("fake", FakeResource())

    def test_unknown_fixture(self, fixture_manager: FixtureManager) -> None:
        with pytest.raises(NotFoundError):
            fixture_manager.acquire("missing")

    def test_names(self, fixture_manager: FixtureManager) -> None:
        fixture_manager.register("another", FakeResource())
        assert fixture_manager.names() == ["another", "fake"]


class TestAcquireRelease:
    def test_first_acquire_starts(self, fixture_manager: FixtureManager, fake_resource: FakeResource) -> None:
        handle = fixture_manager.acquire("fake")
        assert handle.value == "fake-value"
        assert fake_resource.starts == 1
        assert fixture_manager.ref_count("fake") == 1
        assert fixture_manager.is_live("fake")

    def test_second_acquire_reuses(self, fixture_manager: FixtureManager, fake_resource: FakeResource) -> None:
        first = fixture_manager.acquire("fake")
        second = fixture_manager.acquire("fake")
        assert fake_resource.starts == 1
        assert first.value is second.value
        assert first.handle_id != second.handle_id
        assert fixture_manager.ref_count("fake") == 2

    def test_last_release_stops(self, fixture_manager: FixtureManager, fake_resource: FakeResource) -> None:
        first = fixture_manager.acquire("fake")
        second = fixture_manager.acquire("fake")
        fixture_manager.release(first)
        assert fake_resource.stops == 0
        fixture_manager.release(second)
        assert fake_resource.stops == 1
        assert fixture_manager.ref_count("fake") == 0
        assert not fixture_manager.is_live("fake")

    def test_restart_after_stop(self, fixture_manager: FixtureManager, fake_resource: FakeResource) -> None:
        fixture_manager.release(fixture_manager.acquire("fake"))
        fixture_manager.release(fixture_manager.acquire("fake"))
        assert fake_resource.starts == 2
        assert fake_resource.stops == 2

    def test_double_release_is_noop(self, fixture_manager: FixtureManager, fake_resource: FakeResource) -> None:
        keeper = fixture_manager.acquire("fake")
        handle = fixture_manager.acquire("fake")
        fixture_manager.release(handle)
        fixture_manager.release(handle)
        assert fixture_manager.ref_count("fake") == 1
        assert fake_resource.stops == 0
        fixture_manager.release(keeper)
        assert fake_resource.stops == 1

    def test_lease_context_manager(self, fixture_manager: FixtureManager, fake_resource: FakeResource) -> None:
        with fixture_manager.lease("fake") as value:
            assert value == "fake-value"
            assert fixture_manager.ref_count("fake") == 1
        assert fake_resource.stops == 1


class TestStartFailure:
    def test_start_failure_leaves_count_unchanged(self) -> None:
        resource = FakeResource(fail_starts=1)
        manager = FixtureManager()
        manager.register("flaky", resource)

        with pytest.raises(FixtureStartError) as exc_info:
            manager.acquire("flaky")

        assert isinstance(exc_info.value.__cause__, OSError)
        assert manager.ref_count("flaky") == 0
        assert not manager.is_live("flaky")

        # A later acquire retries start()
        handle = manager.acquire("flaky")
        assert resource.starts == 1
        manager.release(handle)


class TestShutdown:
    def test_force_stops_live_fixtures(self, fixture_manager: FixtureManager, fake_resource: FakeResource) -> None:
        handle = fixture_manager.acquire("fake")
        fixture_manager.acquire("fake")

        fixture_manager.shutdown()

        assert fake_resource.stops == 1
        assert fixture_manager.ref_count("fake") == 0
        # Releasing an outstanding handle afterwards is harmless
        fixture_manager.release(handle)
        assert fake_resource.stops == 1

    def test_stale_handle_does_not_stop_restarted_fixture(
        self, fixture_manager: FixtureManager, fake_resource: FakeResource
    ) -> None:
        stale = fixture_manager.acquire("fake")
        fixture_manager.shutdown()
        fresh = fixture_manager.acquire("fake")

        fixture_manager.release(stale)

        assert fixture_manager.is_live("fake")
        assert fixture_manager.ref_count("fake") == 1
        assert fake_resource.starts == 2
        assert fake_resource.stops == 1

        fixture_manager.release(fresh)
        assert fake_resource.stops == 2
        assert not fixture_manager.is_live("fake")

    def test_handle_from_previous_lifetime_is_stale(
        self, fixture_manager: FixtureManager, fake_resource: FakeResource
    ) -> None:
        old = fixture_manager.acquire("fake")
        fixture_manager.release(old)
        keeper = fixture_manager.acquire("fake")
        other = fixture_manager.acquire("fake")
        assert old.generation != keeper.generation

        fixture_manager.release(keeper)
        fixture_manager.release(old)
        assert fixture_manager.ref_count("fake") == 1
        assert fixture_manager.is_live("fake")
        fixture_manager.release(other)
        assert fake_resource.stops == 2

    def test_idempotent(self, fixture_manager: FixtureManager, fake_resource: FakeResource) -> None:
        fixture_manager.acquire("fake")
        fixture_manager.shutdown()
        fixture_manager.shutdown()
        assert fake_resource.stops == 1

    def test_stop_error_does_not_block_others(self) -> None:
        class BrokenStop(FakeResource):
            def stop(self) -> None:
                raise RuntimeError("stuck")

        manager = FixtureManager()
        healthy = FakeResource()
        manager.register("broken", BrokenStop())
        manager.register("healthy", healthy)
        manager.acquire("broken")
        manager.acquire("healthy")

        manager.shutdown()

        assert healthy.stops == 1
        assert not manager.is_live("broken")


class TestConcurrency:
    def test_concurrent_first_acquires_start_once(self) -> None:
        resource = FakeResource()
        resource.gate = threading.Event()
        manager = FixtureManager()
        manager.register("slow", resource)

        with ThreadPoolExecutor(max_workers=8) as pool:
            futures = [pool.submit(manager.acquire, "slow") for _ in range(8)]
            resource.gate.set()
            handles = [f.result(timeout=10) for f in futures]

        assert resource.starts == 1
        assert manager.ref_count("slow") == 8
        for handle in handles:
            manager.release(handle)
        assert resource.stops == 1

    @pytest.mark.property
    @given(
        holders=st.integers(min_value=1, max_value=8),
        rounds=st.integers(min_value=1, max_value=5),
    )
    @settings(max_examples=30, deadline=None)
    def test_balanced_interleavings_start_and_stop_in_pairs(self, holders: int, rounds: int) -> None:
        resource = FakeResource()
        manager = FixtureManager()
        manager.register("shared", resource)
        barrier = threading.Barrier(holders)

        def holder() -> None:
            for _ in range(rounds):
                barrier.wait(timeout=10)
                handle = manager.acquire("shared")
                assert handle.value == "fake-value"
                manager.release(handle)

        with ThreadPoolExecutor(max_workers=holders) as pool:
            for future in [pool.submit(holder) for _ in range(holders)]:
                future.result(timeout=30)

        assert manager.ref_count("shared") == 0
        assert not manager.is_live("shared")
        assert resource.starts == resource.stops
        assert 1 <= resource.starts <= holders * rounds
        assert not resource.running

    @pytest.mark.property
    @given(order=st.permutations(range(6)))
    @settings(max_examples=40, deadline=None)
    def test_concurrent_acquires_then_release_in_any_order(self, order: list[int]) -> None:
        resource = FakeResource()
        resource.gate = threading.Event()
        manager = FixtureManager()
        manager.register("shared", resource)

        with ThreadPoolExecutor(max_workers=len(order)) as pool:
            futures = [pool.submit(manager.acquire, "shared") for _ in order]
            resource.gate.set()
            handles = [f.result(timeout=10) for f in futures]

        assert resource.starts == 1
        assert manager.ref_count("shared") == len(order)

        for position, index in enumerate(order):
            assert resource.stops == 0
            assert manager.is_live("shared")
            manager.release(handles[index])
            assert manager.ref_count("shared") == len(order) - position - 1

        assert resource.starts == 1
        assert resource.stops == 1
        assert not manager.is_live("shared")
