"""Tests for the per-item acquisition engine"""

import pytest

from genvault.api.rate_limiter import RandomThrottle
from genvault.core.acquisition import BOTH_STRATEGIES_FAILED, AcquisitionEngine, build_queue
from genvault.exceptions import AuthorizationError, PayloadIntegrityError
from genvault.models.manifest import ItemStatus

from .conftest import MB, make_item, make_manifest, write_sized_file


async def _no_sleep(_delay):
    return None


def _engine(config, session, store, staging, **kwargs):
    return AcquisitionEngine(
        config,
        session,
        store,
        staging,
        throttle=RandomThrottle(config.throttle_delay_range, sleep=_no_sleep),
        **kwargs,
    )


def _dated(item_id, day, **fields):
    return make_item(item_id, created_at=f"2024-05-{day:02d}T12:00:00Z", **fields)


class TestQueue:
    """Test processing order"""

    def test_pending_before_failed_newest_first(self):
        old_pending = _dated("p-old", 1)
        new_pending = _dated("p-new", 20)
        undated = make_item("p-undated")
        new_failed = _dated("f-new", 25)
        new_failed.mark_failed("HTTP 500")
        acquired = _dated("done", 30)
        acquired.mark_acquired("done.wav", MB)
        manifest = make_manifest(old_pending, undated, new_failed, acquired, new_pending)

        queue = build_queue(manifest)

        assert [item.id for item in queue] == ["p-new", "p-old", "p-undated", "f-new"]


class TestSingleItem:
    """Test the outcome of one item"""

    @pytest.mark.asyncio
    async def test_direct_success_promotes_to_output(
        self, config, fake_session, store, staging
    ):
        manifest = make_manifest(make_item("a1"))
        fake_session.binary_plan["a1"] = [12 * MB]

        stats = await _engine(config, fake_session, store, staging).run(
            manifest, fake_session.credentials
        )

        item = manifest.items["a1"]
        assert item.status == ItemStatus.ACQUIRED
        assert item.local_artifact_name == "a1.wav"
        assert item.artifact_size_mb == 12.0
        assert item.last_error is None
        assert item.last_attempt_at
        assert (config.output_path / "a1.wav").stat().st_size == 12 * MB
        assert not staging.staged_path("a1").exists()
        assert stats.items_acquired == 1
        assert fake_session.interactive_calls == []

    @pytest.mark.asyncio
    async def test_authorization_error_refreshes_once_and_retries(
        self, config, fake_session, store, staging
    ):
        manifest = make_manifest(make_item("a1"))
        fake_session.binary_plan["a1"] = [AuthorizationError("HTTP 401", status=401), 2 * MB]

        await _engine(config, fake_session, store, staging).run(
            manifest, fake_session.credentials
        )

        assert fake_session.refresh_count == 1
        assert fake_session.binary_calls == [("a1", "token-1"), ("a1", "token-2")]
        assert manifest.items["a1"].status == ItemStatus.ACQUIRED

    @pytest.mark.asyncio
    async def test_refreshed_credential_is_kept_for_later_items(
        self, config, fake_session, store, staging
    ):
        manifest = make_manifest(_dated("a1", 2), _dated("b2", 1))
        fake_session.binary_plan["a1"] = [AuthorizationError("HTTP 401", status=401), MB]
        fake_session.binary_plan["b2"] = [MB]

        await _engine(config, fake_session, store, staging).run(
            manifest, fake_session.credentials
        )

        assert fake_session.binary_calls[-1] == ("b2", "token-2")

    @pytest.mark.asyncio
    async def test_falls_back_to_interactive_download(
        self, config, fake_session, store, staging
    ):
        manifest = make_manifest(make_item("a1"))
        fake_session.binary_plan["a1"] = [PayloadIntegrityError("Not audio (text/html)")]
        fake_session.interactive_plan["a1"] = [3 * MB]

        await _engine(config, fake_session, store, staging).run(
            manifest, fake_session.credentials
        )

        assert fake_session.interactive_calls == [manifest.items["a1"].remote_uri]
        assert manifest.items["a1"].status == ItemStatus.ACQUIRED

    @pytest.mark.asyncio
    async def test_no_credential_goes_straight_to_interactive(
        self, config, fake_session, store, staging
    ):
        manifest = make_manifest(make_item("a1"))
        fake_session.interactive_plan["a1"] = [MB]

        await _engine(config, fake_session, store, staging).run(manifest, None)

        assert fake_session.binary_calls == []
        assert manifest.items["a1"].status == ItemStatus.ACQUIRED

    @pytest.mark.asyncio
    async def test_both_strategies_failing_marks_item_failed(
        self, config, fake_session, store, staging
    ):
        manifest = make_manifest(make_item("a1"))

        stats = await _engine(config, fake_session, store, staging).run(
            manifest, fake_session.credentials
        )

        item = manifest.items["a1"]
        assert item.status == ItemStatus.FAILED
        assert item.last_error == BOTH_STRATEGIES_FAILED
        assert item.local_artifact_name is None
        assert stats.items_failed == 1
        assert stats.failure_messages == [f"Title a1 [a1] - {BOTH_STRATEGIES_FAILED}"]

    @pytest.mark.asyncio
    async def test_undersized_payload_is_discarded(
        self, config, fake_session, store, staging
    ):
        manifest = make_manifest(make_item("a1"))
        fake_session.interactive_plan["a1"] = [4_000]

        await _engine(config, fake_session, store, staging).run(
            manifest, fake_session.credentials
        )

        item = manifest.items["a1"]
        assert item.status == ItemStatus.FAILED
        assert item.last_error == "File too small (4000 bytes)"
        assert not staging.staged_path("a1").exists()
        assert not (config.output_path / "a1.wav").exists()

    @pytest.mark.asyncio
    async def test_unexpected_error_is_recorded_on_the_item(
        self, config, fake_session, store, staging
    ):
        manifest = make_manifest(_dated("a1", 2), _dated("b2", 1))
        fake_session.binary_plan["a1"] = [RuntimeError("boom")]
        fake_session.binary_plan["b2"] = [MB]

        await _engine(config, fake_session, store, staging).run(
            manifest, fake_session.credentials
        )

        assert manifest.items["a1"].status == ItemStatus.FAILED
        assert "boom" in manifest.items["a1"].last_error
        assert manifest.items["b2"].status == ItemStatus.ACQUIRED

    @pytest.mark.asyncio
    async def test_previously_failed_item_can_be_acquired(
        self, config, fake_session, store, staging
    ):
        item = make_item("a1")
        item.mark_failed("HTTP 500")
        manifest = make_manifest(item)
        fake_session.binary_plan["a1"] = [MB]

        await _engine(config, fake_session, store, staging).run(
            manifest, fake_session.credentials
        )

        assert manifest.items["a1"].status == ItemStatus.ACQUIRED
        assert manifest.items["a1"].last_error is None


class TestRun:
    """Test queue-level behavior"""

    @pytest.mark.asyncio
    async def test_circuit_breaker_stops_after_consecutive_failures(
        self, config, fake_session, store, staging
    ):
        config.consecutive_failure_limit = 3
        manifest = make_manifest(*[_dated(f"i{n}", 20 - n) for n in range(6)])

        stats = await _engine(config, fake_session, store, staging).run(
            manifest, fake_session.credentials
        )

        assert stats.circuit_tripped is True
        assert [call[0] for call in fake_session.binary_calls] == ["i0", "i1", "i2"]
        counts = manifest.count_by_status()
        assert counts[ItemStatus.FAILED] == 3
        assert counts[ItemStatus.PENDING] == 3

    @pytest.mark.asyncio
    async def test_success_resets_the_failure_counter(
        self, config, fake_session, store, staging
    ):
        config.consecutive_failure_limit = 3
        manifest = make_manifest(*[_dated(f"i{n}", 20 - n) for n in range(7)])
        fake_session.binary_plan["i2"] = [MB]
        fake_session.binary_plan["i5"] = [MB]

        stats = await _engine(config, fake_session, store, staging).run(
            manifest, fake_session.credentials
        )

        assert stats.circuit_tripped is False
        assert len(fake_session.binary_calls) == 7
        assert stats.items_acquired == 2
        assert stats.items_failed == 5

    @pytest.mark.asyncio
    async def test_manifest_is_saved_after_every_item(
        self, config, fake_session, store, staging
    ):
        manifest = make_manifest(*[_dated(f"i{n}", 20 - n) for n in range(3)])

        await _engine(config, fake_session, store, staging).run(
            manifest, fake_session.credentials
        )

        assert [snap[ItemStatus.FAILED] for snap in store.snapshots] == [1, 2, 3]
        assert config.manifest_path.is_file()

    @pytest.mark.asyncio
    async def test_stop_request_ends_run_between_items(
        self, config, fake_session, store, staging
    ):
        manifest = make_manifest(*[_dated(f"i{n}", 20 - n) for n in range(3)])
        for n in range(3):
            fake_session.binary_plan[f"i{n}"] = [MB]
        engine = _engine(config, fake_session, store, staging)
        fake_session.on_binary = lambda _item_id: engine.request_stop()

        stats = await engine.run(manifest, fake_session.credentials)

        assert stats.stopped_early is True
        assert fake_session.binary_calls == [("i0", "token-1")]
        assert manifest.items["i0"].status == ItemStatus.ACQUIRED
        assert manifest.items["i1"].status == ItemStatus.PENDING

    @pytest.mark.asyncio
    async def test_batch_promotion(self, config, fake_session, store, staging):
        config.batch_size = 2
        manifest = make_manifest(*[_dated(f"i{n}", 20 - n) for n in range(3)])
        for n in range(3):
            fake_session.binary_plan[f"i{n}"] = [MB]
        held_statuses = []
        fake_session.on_binary = lambda item_id: held_statuses.append(
            manifest.items["i0"].status
        )

        stats = await _engine(config, fake_session, store, staging).run(
            manifest, fake_session.credentials
        )

        # i0 is still held in staging while i1 is being fetched
        assert held_statuses == [ItemStatus.PENDING, ItemStatus.PENDING, ItemStatus.ACQUIRED]
        assert stats.items_acquired == 3
        assert sorted(p.name for p in config.output_path.iterdir()) == [
            "i0.wav",
            "i1.wav",
            "i2.wav",
        ]

    @pytest.mark.asyncio
    async def test_held_items_are_promoted_after_breaker_trip(
        self, config, fake_session, store, staging
    ):
        config.batch_size = 10
        config.consecutive_failure_limit = 2
        manifest = make_manifest(*[_dated(f"i{n}", 20 - n) for n in range(4)])
        fake_session.binary_plan["i0"] = [MB]

        stats = await _engine(config, fake_session, store, staging).run(
            manifest, fake_session.credentials
        )

        assert stats.circuit_tripped is True
        assert manifest.items["i0"].status == ItemStatus.ACQUIRED
        assert (config.output_path / "i0.wav").exists()

    @pytest.mark.asyncio
    async def test_promotion_failure_keeps_staged_bytes(
        self, config, fake_session, store, staging, tmp_path
    ):
        blocked_output = tmp_path / "not-a-directory"
        blocked_output.write_text("occupied", encoding="utf-8")
        staging.output_dir = blocked_output
        manifest = make_manifest(make_item("a1"))
        fake_session.binary_plan["a1"] = [2 * MB]

        stats = await _engine(config, fake_session, store, staging).run(
            manifest, fake_session.credentials
        )

        item = manifest.items["a1"]
        assert item.status == ItemStatus.FAILED
        assert item.last_error.startswith("Promotion failed:")
        assert item.local_artifact_name is None
        assert staging.staged_path("a1").stat().st_size == 2 * MB
        assert stats.promotion_failures == 1

    @pytest.mark.asyncio
    async def test_staged_file_from_interrupted_run_is_reused(
        self, config, fake_session, store, staging
    ):
        write_sized_file(staging.staged_path("a1"), 5 * MB)
        manifest = make_manifest(make_item("a1"))

        stats = await _engine(config, fake_session, store, staging).run(
            manifest, fake_session.credentials
        )

        assert fake_session.binary_calls == []
        assert manifest.items["a1"].status == ItemStatus.ACQUIRED
        assert stats.items_recovered_from_staging == 1

    @pytest.mark.asyncio
    async def test_nothing_to_do_when_everything_is_acquired(
        self, config, fake_session, store, staging
    ):
        item = make_item("a1")
        item.mark_acquired("a1.wav", MB)

        stats = await _engine(config, fake_session, store, staging).run(
            make_manifest(item), fake_session.credentials
        )

        assert stats.items_queued == 0
        assert fake_session.binary_calls == []
